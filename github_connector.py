"""GitHub Connector — wraps the ``gh`` CLI to provide a typed Python API.

Every read the program-status engine makes against the issue tracker goes
through :class:`GitHubConnector`, which shells out to ``gh`` via
:func:`subprocess.run` and returns parsed records.  Failures surface as
:class:`GitHubConnectorError` subclasses; it is the caller's job to decide
whether a failure is fatal.

No external dependencies are required — only the Python 3.11+ standard library
and a working ``gh`` CLI installation that is already authenticated.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class GitHubConnectorError(Exception):
    """Base exception for all connector errors."""

    def __init__(self, message: str, *, cmd: str = "", stderr: str = "") -> None:
        self.cmd = cmd
        self.stderr = stderr
        super().__init__(message)


class CLINotFoundError(GitHubConnectorError):
    """Raised when the ``gh`` binary is not found on PATH."""


class CLIAuthError(GitHubConnectorError):
    """Raised when ``gh`` reports an authentication problem."""


class CLIExecutionError(GitHubConnectorError):
    """Raised when ``gh`` exits non-zero or exceeds its timeout."""


class JSONParseError(GitHubConnectorError):
    """Raised when the CLI output is not the JSON shape we asked for."""


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

def _label_names(labels_raw: Any) -> list[str]:
    labels_raw = labels_raw or []
    if labels_raw and isinstance(labels_raw[0], dict):
        return [lb.get("name", "") for lb in labels_raw]
    return [str(lb) for lb in labels_raw]


@dataclass(frozen=True, slots=True)
class Issue:
    """Lightweight representation of a GitHub issue."""

    number: int
    title: str
    state: str
    body: str = ""
    labels: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Issue:
        """Build an ``Issue`` from a dict returned by ``gh``."""
        return cls(
            number=int(data.get("number") or 0),
            title=data.get("title") or "",
            state=(data.get("state") or "").upper(),
            body=data.get("body") or "",
            labels=_label_names(data.get("labels")),
        )


@dataclass(frozen=True, slots=True)
class Comment:
    """Lightweight representation of an issue comment (REST shape)."""

    id: int
    body: str
    author: str
    created_at: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        author_raw = data.get("user") or data.get("author") or {}
        if isinstance(author_raw, dict):
            author = author_raw.get("login", "")
        else:
            author = str(author_raw)

        return cls(
            id=int(data.get("id") or 0),
            body=data.get("body") or "",
            author=author,
            created_at=data.get("created_at") or data.get("createdAt") or "",
        )


@dataclass(frozen=True, slots=True)
class PullRequest:
    """Lightweight representation of a pull request.

    ``body`` is only populated by :meth:`GitHubConnector.view_pull_request`;
    the list query leaves it empty.
    """

    number: int
    title: str
    state: str
    head_ref_name: str = ""
    url: str = ""
    review_decision: str = ""
    mergeable: str = ""
    merged_at: str = ""
    body: str = ""

    @property
    def merged(self) -> bool:
        # mergedAt is authoritative; state lags behind right after a merge
        return bool(self.merged_at)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PullRequest:
        return cls(
            number=int(data.get("number") or 0),
            title=data.get("title") or "",
            state=(data.get("state") or "UNKNOWN").upper(),
            head_ref_name=data.get("headRefName") or "",
            url=data.get("url") or "",
            review_decision=data.get("reviewDecision") or "",
            mergeable=data.get("mergeable") or "",
            merged_at=data.get("mergedAt") or "",
            body=data.get("body") or "",
        )


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------

_ISSUE_FIELDS = "number,title,state,labels,body"

_PR_LIST_FIELDS = (
    "number,title,state,headRefName,url,reviewDecision,mergeable,mergedAt"
)

_PR_VIEW_FIELDS = (
    "number,title,state,body,headRefName,reviewDecision,mergeable,mergedAt"
)


class GitHubConnector:
    """Typed Python wrapper around the ``gh`` CLI.

    Parameters
    ----------
    repo:
        The *owner/name* slug of the repository (e.g. ``"acme/widgets"``).
    timeout:
        Maximum number of seconds to wait for each ``gh`` invocation.
    max_retries:
        Attempts per command when GitHub reports rate limiting.  ``1``
        disables the backoff entirely.
    """

    def __init__(
        self,
        repo: str,
        *,
        timeout: int = 30,
        max_retries: int = 3,
    ) -> None:
        self.repo = repo
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._verify_cli()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _verify_cli(self) -> None:
        """Assert that ``gh`` is installed and authenticated."""
        try:
            result = subprocess.run(
                ["gh", "--version"],
                capture_output=True,
                text=True,
                timeout=10,
            )
            if result.returncode != 0:
                raise CLINotFoundError(
                    "gh CLI returned a non-zero exit code on --version",
                    cmd="gh --version",
                    stderr=result.stderr.strip(),
                )
        except FileNotFoundError as exc:
            raise CLINotFoundError(
                "gh CLI is not installed or not on PATH. "
                "Install it from https://cli.github.com/"
            ) from exc

        result = subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        if result.returncode != 0:
            raise CLIAuthError(
                "gh CLI is not authenticated. Run `gh auth login` first.",
                cmd="gh auth status",
                stderr=result.stderr.strip(),
            )

    def _run(self, args: list[str]) -> str:
        """Execute a ``gh`` command and return its stdout.

        Uses list-mode ``subprocess.run`` (no shell), so issue bodies and
        other user text never reach a shell.

        Raises
        ------
        CLIExecutionError
            When ``gh`` exits with a non-zero return code or times out.
        """
        full_args: list[str] = ["gh"] + args
        cmd_str = " ".join(shlex.quote(a) for a in full_args)
        logger.debug("gh exec: %s", cmd_str)

        for attempt in range(self.max_retries):
            try:
                result = subprocess.run(
                    full_args,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired as exc:
                raise CLIExecutionError(
                    f"gh command timed out after {self.timeout}s",
                    cmd=cmd_str,
                ) from exc
            except UnicodeDecodeError as exc:
                raise CLIExecutionError(
                    f"gh output is not valid UTF-8: {exc}",
                    cmd=cmd_str,
                ) from exc

            if result.returncode != 0:
                stderr = result.stderr.strip()
                rate_limited = (
                    "rate limit" in stderr.lower()
                    or "api rate" in stderr.lower()
                    or "403" in stderr
                )
                if rate_limited and attempt < self.max_retries - 1:
                    wait = 2 ** (attempt + 1)
                    logger.warning(
                        "Rate limited (attempt %d/%d), retrying in %ds: %s",
                        attempt + 1, self.max_retries, wait, stderr[:100],
                    )
                    time.sleep(wait)
                    continue
                raise CLIExecutionError(
                    f"gh command failed (rc={result.returncode}): {stderr}",
                    cmd=cmd_str,
                    stderr=stderr,
                )

            return result.stdout

        raise CLIExecutionError("Exhausted retries", cmd=cmd_str)

    def _run_json(self, args: list[str]) -> Any:
        """Execute a ``gh`` command and parse its JSON output."""
        raw = self._run(args)
        if not raw.strip():
            return []
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise JSONParseError(
                f"Failed to parse gh output as JSON: {exc}",
                cmd=" ".join(args),
            ) from exc

    def _run_json_object(self, args: list[str]) -> dict[str, Any]:
        data = self._run_json(args)
        if not isinstance(data, dict):
            raise JSONParseError(
                f"Expected a JSON object, got {type(data).__name__}",
                cmd=" ".join(args),
            )
        return data

    def _run_json_list(self, args: list[str]) -> list[Any]:
        data = self._run_json(args)
        if not isinstance(data, list):
            raise JSONParseError(
                f"Expected a JSON array, got {type(data).__name__}",
                cmd=" ".join(args),
            )
        return data

    def _run_json_pages(self, args: list[str]) -> list[Any]:
        """Execute a ``gh api --paginate`` command and join its pages.

        With ``--paginate`` gh prints one JSON array per page back to back
        (``[...][...]``), which is not a single JSON document.
        """
        raw = self._run(args)
        decoder = json.JSONDecoder()
        items: list[Any] = []
        pos = 0
        while True:
            while pos < len(raw) and raw[pos].isspace():
                pos += 1
            if pos >= len(raw):
                return items
            try:
                page, pos = decoder.raw_decode(raw, pos)
            except json.JSONDecodeError as exc:
                raise JSONParseError(
                    f"Failed to parse gh output as JSON: {exc}",
                    cmd=" ".join(args),
                ) from exc
            if not isinstance(page, list):
                raise JSONParseError(
                    f"Expected a JSON array per page, got {type(page).__name__}",
                    cmd=" ".join(args),
                )
            items.extend(page)

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def view_issue(self, number: int) -> Issue:
        """Fetch a single issue (number, title, state, labels, body)."""
        data = self._run_json_object([
            "issue", "view", str(number),
            "--repo", self.repo,
            "--json", _ISSUE_FIELDS,
        ])
        return Issue.from_dict(data)

    def list_issues(
        self,
        *,
        state: str = "open",
        limit: int = 100,
    ) -> list[Issue]:
        """List issues in the repository, most recently created first.

        Parameters
        ----------
        state:
            One of ``"open"``, ``"closed"``, or ``"all"``.
        limit:
            Maximum number of issues to return.
        """
        data = self._run_json_list([
            "issue", "list",
            "--repo", self.repo,
            "--state", state,
            "--limit", str(limit),
            "--json", _ISSUE_FIELDS,
        ])
        return [Issue.from_dict(item) for item in data if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def get_comments(self, number: int) -> list[Comment]:
        """Return all comments on an issue (every page), oldest first."""
        data = self._run_json_pages([
            "api",
            f"repos/{self.repo}/issues/{number}/comments",
            "--paginate",
        ])
        return [Comment.from_dict(c) for c in data if isinstance(c, dict)]

    def add_comment(self, number: int, body: str) -> None:
        """Add a comment to an issue."""
        self._run([
            "issue", "comment", str(number),
            "--repo", self.repo,
            "--body", body,
        ])
        logger.info("Commented on issue #%d in %s", number, self.repo)

    def update_comment(self, comment_id: int, body: str) -> None:
        """Replace the body of an existing issue comment."""
        self._run([
            "api",
            f"repos/{self.repo}/issues/comments/{comment_id}",
            "-X", "PATCH",
            "-f", f"body={body}",
        ])
        logger.info("Updated comment %d in %s", comment_id, self.repo)

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def list_pull_requests(
        self,
        *,
        state: str = "all",
        limit: int = 20,
    ) -> list[PullRequest]:
        """List pull requests (without bodies)."""
        data = self._run_json_list([
            "pr", "list",
            "--repo", self.repo,
            "--state", state,
            "--limit", str(limit),
            "--json", _PR_LIST_FIELDS,
        ])
        return [PullRequest.from_dict(item) for item in data if isinstance(item, dict)]

    def view_pull_request(self, number: int) -> PullRequest:
        """Fetch a single pull request including its body."""
        data = self._run_json_object([
            "pr", "view", str(number),
            "--repo", self.repo,
            "--json", _PR_VIEW_FIELDS,
        ])
        return PullRequest.from_dict(data)
