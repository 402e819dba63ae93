"""Out-of-band maintenance of hooks.json.

The dispatcher only ever reads the routing table. Provisioning registers
apps and branches through these helpers (see scripts/manage_hooks.py).
Entries are upserted by id so re-running provisioning is idempotent, and
existing secrets survive an upsert.
"""

import json
import os
import re
import secrets
import tempfile
from pathlib import Path
from typing import Any

from webhook_dispatcher.logging import get_logger

logger = get_logger(__name__)

GITHUB_PATH = "/_github"

_SSH_URL = re.compile(r"^git@github\.com:([^/]+)/([^/]+)\.git$")
_HTTPS_URL = re.compile(r"^https?://github\.com/([^/]+)/([^/.]+)(?:\.git)?$")
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def empty_config(listen_host: str = "127.0.0.1", listen_port: int = 9000) -> dict[str, Any]:
    return {"listenHost": listen_host, "listenPort": listen_port, "hooks": [], "github": []}


def new_secret() -> str:
    return secrets.token_hex(32)


def parse_owner_repo(url: str) -> str:
    """``owner/name`` from a GitHub SSH or HTTPS clone URL, or "" if not GitHub."""
    for pattern in (_SSH_URL, _HTTPS_URL):
        m = pattern.match(url)
        if m:
            return f"{m.group(1)}/{m.group(2)}"
    return ""


def branch_hook_id(app_name: str, branch: str) -> str:
    return f"{app_name}-branch-{_UNSAFE_ID_CHARS.sub('-', branch)}"


def load_config(path: str | Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        cfg = json.load(f)
    cfg.setdefault("hooks", [])
    cfg.setdefault("github", [])
    return cfg


def save_config(path: str | Path, cfg: dict[str, Any]) -> None:
    """Write atomically so a concurrent dispatcher read sees old or new, never half."""
    path = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=".hooks.", suffix=".json", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(cfg, f, indent=2)
            f.write("\n")
        if path.exists():
            os.chmod(tmp, path.stat().st_mode & 0o777)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def ensure_config(path: str | Path, listen_host: str = "127.0.0.1", listen_port: int = 9000) -> bool:
    """Create hooks.json if missing. Returns True when a file was written."""
    path = Path(path)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    save_config(path, empty_config(listen_host, listen_port))
    logger.info("hooks_config_created", path=str(path))
    return True


def upsert_simple_hook(
    cfg: dict[str, Any],
    hook_id: str,
    path: str,
    host: str,
    directory: str,
    branch: str,
    pm2_name: str,
) -> dict[str, Any] | None:
    """Insert or update a simple hook. Hooks without a host are not registered."""
    if not host:
        return None
    fields = {
        "type": "simple",
        "path": path,
        "host": host,
        "dir": directory,
        "branch": branch,
        "pm2": pm2_name,
    }
    for hook in cfg["hooks"]:
        if hook.get("id") == hook_id:
            hook.update(fields)
            if not hook.get("secret"):
                hook["secret"] = new_secret()
            return hook
    entry = {"id": hook_id, **fields, "secret": new_secret()}
    cfg["hooks"].append(entry)
    return entry


def find_github_entry(cfg: dict[str, Any], repo_full: str) -> dict[str, Any] | None:
    if not repo_full:
        return None
    for entry in cfg["github"]:
        if entry.get("repo") == repo_full:
            return entry
    return None


def upsert_github_mapping(
    cfg: dict[str, Any],
    entry_id: str,
    repo_full: str,
    ref: str,
    directory: str,
    pm2_name: str,
    branch: str,
) -> dict[str, Any]:
    """Map ``ref`` to a target on the repo's GitHub entry, creating it if needed."""
    entry = find_github_entry(cfg, repo_full)
    if entry is None:
        entry = {
            "id": entry_id,
            "path": GITHUB_PATH,
            "secret": new_secret(),
            "repo": repo_full,
            "map": {},
        }
        cfg["github"].append(entry)
    entry.setdefault("map", {})
    entry["map"][ref] = {"dir": directory, "pm2": pm2_name, "branch": branch}
    return entry


def add_app(
    cfg: dict[str, Any],
    app_name: str,
    repo_url: str,
    default_branch: str,
    live_dir: str,
    live_domain: str,
    dev_dir: str = "",
    dev_domain: str = "",
    staging_dir: str = "",
    staging_domain: str = "",
) -> dict[str, str]:
    """Register live (and optionally dev/staging) deploys for one app.

    Returns the secrets per role ("live", "dev", "staging", "github"); roles
    that were not registered map to "".
    """
    stages = [
        ("live", live_dir, live_domain, default_branch),
        ("dev", dev_dir, dev_domain, "dev"),
        ("staging", staging_dir, staging_domain, "staging"),
    ]
    repo_full = parse_owner_repo(repo_url)
    secrets_out: dict[str, str] = {}
    gh = None

    for stage, directory, domain, branch in stages:
        pm2_name = f"{app_name}-{stage}"
        hook = None
        if directory and domain:
            hook = upsert_simple_hook(
                cfg, pm2_name, f"/_deploy/{stage}", domain, directory, branch, pm2_name
            )
            if repo_full:
                gh = upsert_github_mapping(
                    cfg, app_name, repo_full, f"refs/heads/{branch}", directory, pm2_name, branch
                )
        secrets_out[stage] = (hook or {}).get("secret", "")

    secrets_out["github"] = (gh or {}).get("secret", "")
    logger.info("app_registered", app=app_name, repo=repo_full or None)
    return secrets_out


def add_branch(
    cfg: dict[str, Any],
    app_name: str,
    branch: str,
    directory: str,
    domain: str,
    pm2_name: str = "",
    repo_full: str = "",
) -> dict[str, str]:
    """Register a feature-branch deploy at ``/_deploy/<branch>``.

    Without a repository the GitHub mapping lands on a wildcard entry
    (empty ``repo``) named after the app.
    """
    pm2_name = pm2_name or f"{app_name}-{_UNSAFE_ID_CHARS.sub('-', branch)}"
    hook = upsert_simple_hook(
        cfg,
        branch_hook_id(app_name, branch),
        f"/_deploy/{branch}",
        domain,
        directory,
        branch,
        pm2_name,
    )
    gh = find_github_entry(cfg, repo_full)
    if gh is None and not repo_full:
        gh = next(
            (g for g in cfg["github"] if g.get("id") == app_name and not g.get("repo")),
            None,
        )
    if gh is None:
        gh = {
            "id": app_name,
            "path": GITHUB_PATH,
            "secret": new_secret(),
            "repo": repo_full,
            "map": {},
        }
        cfg["github"].append(gh)
    gh.setdefault("map", {})
    gh["map"][f"refs/heads/{branch}"] = {"dir": directory, "pm2": pm2_name, "branch": branch}

    logger.info("branch_registered", app=app_name, branch=branch, repo=repo_full or None)
    return {"simple": (hook or {}).get("secret", ""), "github": gh.get("secret", "")}


def remove_branch(
    cfg: dict[str, Any], app_name: str, branch: str, repo_full: str = ""
) -> bool:
    """Drop the branch's simple hook and its ref mappings.

    GitHub entries are kept even when their map becomes empty, as other
    branches may be registered against them later. Returns True if anything
    was removed.
    """
    hook_id = branch_hook_id(app_name, branch)
    before = len(cfg["hooks"])
    cfg["hooks"] = [h for h in cfg["hooks"] if h.get("id") != hook_id]
    removed = len(cfg["hooks"]) != before

    ref = f"refs/heads/{branch}"
    for entry in cfg["github"]:
        if repo_full and entry.get("repo") != repo_full:
            continue
        mapping = entry.get("map") or {}
        if ref in mapping:
            del mapping[ref]
            entry["map"] = mapping
            removed = True

    logger.info("branch_removed", app=app_name, branch=branch, removed=removed)
    return removed


def describe_routes(cfg: dict[str, Any]) -> list[str]:
    """Human-readable route lines, secrets omitted."""
    lines = []
    for hook in cfg["hooks"]:
        lines.append(
            f"simple  {hook.get('path')}  host={hook.get('host') or '*'}  "
            f"id={hook.get('id')}  dir={hook.get('dir')}  "
            f"branch={hook.get('branch')}  pm2={hook.get('pm2')}"
        )
    for entry in cfg["github"]:
        lines.append(
            f"github  {entry.get('path')}  repo={entry.get('repo') or '*'}  id={entry.get('id')}"
        )
        for ref, target in sorted((entry.get("map") or {}).items()):
            lines.append(
                f"          {ref} -> {target.get('dir')} (pm2: {target.get('pm2')})"
            )
    return lines
