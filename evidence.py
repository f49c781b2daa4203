"""Call-scoped evidence fetching.

:class:`EvidenceFetcher` is the only place the discovery engine talks to its
collaborators (``gh``, tmux, local state).  Every read is memoised in an
:class:`EvidenceCache` owned by a single discovery call, and every failure is
turned into an explicit absent value (``None`` or an empty list) so callers
have to handle "unavailable" on purpose.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from config import FALLBACK_SEARCH_LIMIT, PR_LIST_LIMIT
from github_connector import GitHubConnector, GitHubConnectorError, Issue, PullRequest
from local_state import StateItem, StateStore
from session_controller import SessionController

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EvidenceCache:
    """Memoises producer results by key for the lifetime of one call.

    Absent results (``None``, ``[]``) are cached as well, so a failed query
    is not repeated within the same call either.
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def get(self, key: str, producer: Callable[[], T]) -> T:
        if key in self._values:
            return self._values[key]
        value = producer()
        self._values[key] = value
        return value

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


class EvidenceFetcher:
    """Failure-absorbing, cached reads for one discovery call.

    Queries run strictly one after another; each ``gh`` call is bounded by
    the connector's timeout.
    """

    def __init__(
        self,
        gh: GitHubConnector,
        *,
        cache: EvidenceCache | None = None,
        sessions: SessionController | None = None,
        state: StateStore | None = None,
    ) -> None:
        self.gh = gh
        self.cache = cache if cache is not None else EvidenceCache()
        self.sessions = sessions
        self.state = state

    @property
    def repo(self) -> str:
        return self.gh.repo

    def _guarded(self, key: str, producer: Callable[[], T], default: T) -> T:
        def run() -> T:
            try:
                return producer()
            except (GitHubConnectorError, OSError) as exc:
                logger.warning("Query %s failed: %s", key, exc)
                return default
            except (KeyError, TypeError, ValueError, OverflowError) as exc:
                logger.warning("Malformed payload for %s: %s", key, exc)
                return default

        return self.cache.get(key, run)

    # ------------------------------------------------------------------
    # Issue tracker
    # ------------------------------------------------------------------

    def issue(self, number: int) -> Issue | None:
        """The issue, or ``None`` if it could not be identified."""
        found = self._guarded(
            f"issue-{number}", lambda: self.gh.view_issue(number), None
        )
        if found is None or not found.number:
            return None
        return found

    def comment_bodies(self, number: int) -> list[str]:
        return self._guarded(
            f"comments-{number}",
            lambda: [c.body for c in self.gh.get_comments(number)],
            [],
        )

    def recent_issues(self, limit: int = FALLBACK_SEARCH_LIMIT) -> list[Issue]:
        return self._guarded(
            "recent-issues",
            lambda: self.gh.list_issues(state="all", limit=limit),
            [],
        )

    def pull_requests(self) -> list[PullRequest]:
        return self._guarded(
            "pr-list",
            lambda: self.gh.list_pull_requests(state="all", limit=PR_LIST_LIMIT),
            [],
        )

    def pull_request_detail(self, number: int) -> PullRequest | None:
        return self._guarded(
            f"pr-detail-{number}",
            lambda: self.gh.view_pull_request(number),
            None,
        )

    # ------------------------------------------------------------------
    # Local collaborators
    # ------------------------------------------------------------------

    def session_windows(self) -> list[str] | None:
        if self.sessions is None:
            return None
        return self._guarded("session-windows", self.sessions.list_windows, None)

    def state_items(self) -> list[StateItem]:
        if self.state is None:
            return []
        return self._guarded("state-items", self.state.load_items, [])
