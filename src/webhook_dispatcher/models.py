"""Pydantic models for the routing table and deploy results.

Field aliases follow the on-disk hooks.json layout written by the
provisioning scripts (``dir``, ``pm2``, ``repo``, ``map``); Python code uses
the descriptive attribute names.
"""

from pydantic import BaseModel, ConfigDict, Field


class DeployTarget(BaseModel):
    """Working directory, branch and managed process a pipeline run acts on."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    working_directory: str = Field(alias="dir")
    branch: str
    process_name: str = Field(alias="pm2")


class RouteEntry(BaseModel):
    """Manually triggerable deploy target guarded by a shared secret header."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    path: str
    type: str | None = None  # "simple" or absent; anything else is not a simple hook
    host: str | None = None  # Disambiguates entries sharing a path
    working_directory: str = Field(alias="dir")
    branch: str
    process_name: str = Field(alias="pm2")
    secret: str = ""

    @property
    def is_simple(self) -> bool:
        return self.type in (None, "simple")

    def target(self) -> DeployTarget:
        return DeployTarget(
            working_directory=self.working_directory,
            branch=self.branch,
            process_name=self.process_name,
        )


class GitHubRouteEntry(BaseModel):
    """GitHub push webhook for one repository, verified by HMAC-SHA256.

    ``ref_to_target`` maps fully-qualified refs (``refs/heads/main``) to the
    target each one deploys. An empty ``repository_full_name`` accepts any
    repository whose payload verifies against this entry's secret.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    path: str = "/_github"
    secret: str = ""
    repository_full_name: str = Field(default="", alias="repo")
    ref_to_target: dict[str, DeployTarget] = Field(default_factory=dict, alias="map")


class Snapshot(BaseModel):
    """One read of hooks.json."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    listen_host: str = Field(default="127.0.0.1", alias="listenHost")
    listen_port: int = Field(default=9000, alias="listenPort")
    hooks: list[RouteEntry] = Field(default_factory=list)
    github: list[GitHubRouteEntry] = Field(default_factory=list)


class StepResult(BaseModel):
    """Outcome of one pipeline command."""

    step: str  # fetch, reset, install, restart
    command: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        """stderr when the command wrote any, otherwise stdout."""
        return self.stderr if self.stderr.strip() else self.stdout


class DeployResult(BaseModel):
    """Outcome of one deploy request. Never persisted."""

    success: bool
    output: str = ""
    target_id: str | None = None
    repo: str | None = None
    ref: str | None = None
    timed_out: bool = False
    failed_step: str | None = None
    steps: list[StepResult] = Field(default_factory=list)
