"""
Program Status — Configuration.

Defines paths into the automation root, the wire-format tokens shared with
the pipeline scripts, label vocabulary, discovery tunables, and the
project/repo registry read from ``config/``.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Automation root (state/, data/, config/, logs/ and .env live here)
AUTOMATION_DIR = Path(os.environ.get("AUTOMATION_DIR") or Path.cwd())

# Paths
ENV_FILE = AUTOMATION_DIR / ".env"
CONFIG_DIR = AUTOMATION_DIR / "config"
STATE_ITEMS_DIR = AUTOMATION_DIR / "state" / "items"
WORK_SLOTS_DIR = AUTOMATION_DIR / "state" / "agent-work-slots"
METRICS_FILE = AUTOMATION_DIR / "data" / "metrics.jsonl"
LOG_FILE = AUTOMATION_DIR / "logs" / "program-mgr.log"

# tmux session that hosts one window per running agent
TMUX_SESSION = "zapat"

# Wire-format tokens written by the pipeline and by ``program --post``
SUB_ISSUES_MARKER = "zapat-sub-issues"
STATUS_SENTINEL = "zapat-program-status"

# Labels
HUMAN_ONLY_LABEL = "human-only"
RESEARCH_LABEL = "agent-research"

# Review decisions reported by ``gh pr list``
CHANGES_REQUESTED = "CHANGES_REQUESTED"
APPROVED = "APPROVED"

# Discovery parameters
QUERY_TIMEOUT = 15          # Seconds per gh invocation
FALLBACK_SEARCH_LIMIT = 50  # Recent issues scanned when no other evidence exists
PR_LIST_LIMIT = 20          # Page size for the PR list query
ETA_WINDOW_DAYS = 30        # Rolling metrics window for ETAs
CAPACITY_RISK_RATIO = 0.8   # Slot usage that counts as a capacity risk
DEFAULT_MAX_CONCURRENT_WORK = 10

# Log rotation
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3


# ---------------------------------------------------------------------------
# .env values
# ---------------------------------------------------------------------------

def read_env_file(path: Path | None = None) -> dict[str, str]:
    """Parse a simple ``KEY=VALUE`` file, skipping blanks and ``#`` comments.

    Surrounding single or double quotes are stripped from values.  A missing
    or unreadable file yields an empty dict.
    """
    env_path = path if path is not None else ENV_FILE
    values: dict[str, str] = {}
    try:
        text = env_path.read_text(encoding="utf-8")
    except OSError:
        return values

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def get_config_value(
    key: str,
    fallback: str = "",
    *,
    env_path: Path | None = None,
) -> str:
    """Return *key* from ``.env``, then the process environment, then *fallback*."""
    return read_env_file(env_path).get(key) or os.environ.get(key) or fallback


def max_concurrent_work(*, env_path: Path | None = None) -> int:
    """Configured ceiling on concurrently running agent sessions."""
    raw = get_config_value(
        "MAX_CONCURRENT_WORK",
        str(DEFAULT_MAX_CONCURRENT_WORK),
        env_path=env_path,
    )
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "Invalid MAX_CONCURRENT_WORK %r, using %d",
            raw, DEFAULT_MAX_CONCURRENT_WORK,
        )
        return DEFAULT_MAX_CONCURRENT_WORK


# ---------------------------------------------------------------------------
# Projects and repositories
# ---------------------------------------------------------------------------

def _read_tsv(path: Path) -> list[list[str]]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return []
    rows: list[list[str]] = []
    for line in text.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        rows.append([part.strip() for part in line.split("\t")])
    return rows


def get_projects(config_dir: Path | None = None) -> list[dict[str, Any]]:
    """Return the enabled projects as ``{"slug", "name", "enabled"}`` dicts.

    Resolution order:

    1. ``projects.conf`` manifest (``slug<TAB>name<TAB>enabled``)
    2. every ``<slug>/`` sub-directory holding a ``repos.conf``
    3. a legacy single ``default`` project backed by ``repos.conf``
    """
    root = config_dir if config_dir is not None else CONFIG_DIR

    manifest = root / "projects.conf"
    if manifest.exists():
        projects = []
        for row in _read_tsv(manifest):
            slug = row[0]
            name = row[1] if len(row) > 1 and row[1] else slug
            enabled = (row[2] if len(row) > 2 and row[2] else "true") == "true"
            if enabled:
                projects.append({"slug": slug, "name": name, "enabled": True})
        return projects

    if root.is_dir():
        slugs = sorted(
            entry.name for entry in root.iterdir()
            if entry.is_dir() and (entry / "repos.conf").exists()
        )
        if slugs:
            return [{"slug": s, "name": s, "enabled": True} for s in slugs]

    if (root / "repos.conf").exists():
        return [{"slug": "default", "name": "Default Project", "enabled": True}]

    return []


def _project_config_dir(slug: str, root: Path) -> Path:
    if (
        slug == "default"
        and not (root / "default").exists()
        and (root / "repos.conf").exists()
    ):
        return root
    return root / slug


def get_project_repos(slug: str, config_dir: Path | None = None) -> list[dict[str, str]]:
    """Return ``{"repo", "local_path", "type"}`` rows for project *slug*."""
    root = config_dir if config_dir is not None else CONFIG_DIR
    repos_conf = _project_config_dir(slug, root) / "repos.conf"
    return [
        {"repo": row[0], "local_path": row[1], "type": row[2]}
        for row in _read_tsv(repos_conf)
        if len(row) >= 3
    ]


def get_repos(
    project: str | None = None,
    config_dir: Path | None = None,
) -> list[dict[str, str]]:
    """Return the repos of *project*, or of every project when omitted."""
    if project:
        return get_project_repos(project, config_dir)

    projects = get_projects(config_dir)
    if len(projects) == 1:
        return get_project_repos(projects[0]["slug"], config_dir)

    repos: list[dict[str, str]] = []
    for proj in projects:
        for repo in get_project_repos(proj["slug"], config_dir):
            repos.append({**repo, "project": proj["slug"]})
    return repos
