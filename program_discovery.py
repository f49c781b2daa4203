"""Program discovery — reconstructs the status of a multi-issue program.

Given a parent issue, :class:`ProgramDiscovery` finds its sub-issues, their
declared dependencies and linked PRs, the local pipeline state and live tmux
windows, and aggregates all of it into a :class:`~models.ProgramGraph`.

It never writes to GitHub or to local state.  Each :meth:`discover` call
owns its own evidence cache, so concurrent calls share nothing.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging

from config import ETA_WINDOW_DAYS
from dependency_graph import build_dependency_graph
from discovery import discover_sub_issue_numbers
from evidence import EvidenceCache, EvidenceFetcher
from github_connector import GitHubConnector
from local_state import MetricsLog, StateStore
from models import ETAEstimate, LinkedPR, ParentIssue, ProgramGraph, SubIssue
from resolvers import collect_prs, resolve_sub_issue
from session_controller import SessionController
from status import (
    compute_eta,
    compute_next_steps,
    compute_phase,
    compute_progress,
    find_active_work,
    find_blockers,
    find_risks,
)

logger = logging.getLogger(__name__)


class ProgramDiscovery:
    """Read-only program status engine.

    All collaborators are injected; the instance keeps no per-call state.
    """

    def __init__(
        self,
        gh: GitHubConnector,
        *,
        state_store: StateStore | None = None,
        metrics_log: MetricsLog | None = None,
        sessions: SessionController | None = None,
        max_concurrent: int = 10,
    ) -> None:
        self.gh = gh
        self.state_store = state_store
        self.metrics_log = metrics_log
        self.sessions = sessions
        self.max_concurrent = max_concurrent

    def _new_fetcher(self) -> EvidenceFetcher:
        return EvidenceFetcher(
            self.gh,
            cache=EvidenceCache(),
            sessions=self.sessions,
            state=self.state_store,
        )

    def find_sub_issue_numbers(self, parent_number: int) -> list[int] | None:
        """Discovered sub-issue ids, or ``None`` if the parent is unreadable."""
        fetcher = self._new_fetcher()
        if fetcher.issue(parent_number) is None:
            return None
        return discover_sub_issue_numbers(fetcher, parent_number)

    def discover(self, parent_number: int) -> ProgramGraph:
        fetcher = self._new_fetcher()

        issue = fetcher.issue(parent_number)
        if issue is None:
            logger.error("Parent issue #%d unavailable in %s", parent_number, self.gh.repo)
            return ProgramGraph.failed(
                f"Could not fetch issue #{parent_number} from {self.gh.repo}"
            )
        parent = ParentIssue(number=issue.number, title=issue.title, state=issue.state)

        numbers = discover_sub_issue_numbers(fetcher, parent_number)
        if not numbers:
            logger.info("No sub-issues found for #%d", parent_number)
            return ProgramGraph.without_sub_issues(parent)

        sub_issues: list[SubIssue] = []
        for number in numbers:
            sub = resolve_sub_issue(fetcher, number)
            if sub is not None:
                sub_issues.append(sub)

        prs = collect_prs(sub_issues)
        graph = build_dependency_graph(sub_issues)
        active_slots = self.state_store.active_slots() if self.state_store else None

        result = ProgramGraph(
            parent=parent,
            sub_issues=sub_issues,
            prs=prs,
            progress=compute_progress(sub_issues, prs),
            phase=compute_phase(sub_issues, prs),
            graph=graph,
            blockers=find_blockers(sub_issues, prs),
            risks=find_risks(
                sub_issues,
                prs,
                active_slots=active_slots,
                max_concurrent=self.max_concurrent,
                graph=graph,
            ),
            active_work=find_active_work(sub_issues),
            etas=self._estimate(sub_issues, prs),
            next_steps=compute_next_steps(sub_issues, prs),
        )
        logger.info(
            "Program #%d: %d sub-issues, %d PRs, phase=%s, %d%% (%d queries)",
            parent_number, len(sub_issues), len(prs),
            result.phase, result.progress.percent, len(fetcher.cache),
        )
        return result

    def _estimate(
        self,
        sub_issues: list[SubIssue],
        prs: list[LinkedPR],
    ) -> ETAEstimate | None:
        if self.metrics_log is None:
            return None
        try:
            records = self.metrics_log.read(days=ETA_WINDOW_DAYS)
        except Exception as exc:
            logger.warning("Could not load metrics for ETA: %s", exc)
            return None
        return compute_eta(sub_issues, prs, records, self.max_concurrent)
