"""Data containers for a program graph.

A *program* is a parent issue whose work is split across sub-issues.  Every
value here is rebuilt from scratch on each discovery call; nothing is
persisted.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from config import CHANGES_REQUESTED, HUMAN_ONLY_LABEL
from github_connector import PullRequest


@dataclass(frozen=True, slots=True)
class ParentIssue:
    number: int
    title: str
    state: str


@dataclass(frozen=True, slots=True)
class PipelineStatus:
    """Local execution state recorded by the pipeline for one work item."""

    status: str
    attempts: int = 0
    last_error: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineStatus:
        try:
            attempts = int(data.get("attempts") or 0)
        except (TypeError, ValueError, OverflowError):
            attempts = 0
        return cls(
            status=str(data.get("status") or ""),
            attempts=attempts,
            last_error=str(data.get("last_error") or ""),
        )


@dataclass(frozen=True, slots=True)
class LinkedPR:
    """A pull request associated with a sub-issue."""

    number: int
    title: str
    state: str
    branch: str
    review_decision: str
    merged: bool

    @classmethod
    def from_pull_request(cls, pr: PullRequest) -> LinkedPR:
        return cls(
            number=pr.number,
            title=pr.title,
            state=pr.state or "UNKNOWN",
            branch=pr.head_ref_name,
            review_decision=pr.review_decision,
            merged=pr.merged,
        )

    @property
    def is_open(self) -> bool:
        return self.state == "OPEN"

    @property
    def changes_requested(self) -> bool:
        return self.review_decision == CHANGES_REQUESTED


@dataclass(slots=True)
class SubIssue:
    number: int
    title: str
    state: str
    labels: list[str] = field(default_factory=list)
    dependencies: list[int] = field(default_factory=list)
    linked_prs: list[LinkedPR] = field(default_factory=list)
    pipeline_status: PipelineStatus | None = None
    tmux_session: str | None = None

    @property
    def is_open(self) -> bool:
        return self.state == "OPEN"

    @property
    def is_closed(self) -> bool:
        return self.state == "CLOSED"

    @property
    def is_human_only(self) -> bool:
        return HUMAN_ONLY_LABEL in self.labels

    @property
    def is_running(self) -> bool:
        return (
            self.pipeline_status is not None
            and self.pipeline_status.status == "running"
        )

    @property
    def is_active(self) -> bool:
        """Live tmux window or a ``running`` pipeline record."""
        return bool(self.tmux_session) or self.is_running


@dataclass(frozen=True, slots=True)
class Edge:
    """``source`` must finish before ``target`` can start."""

    source: int
    target: int

    def to_dict(self) -> dict[str, int]:
        return {"from": self.source, "to": self.target}


@dataclass(slots=True)
class DependencyGraph:
    nodes: list[int] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    critical_path: list[int] = field(default_factory=list)
    cycles: list[list[int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": list(self.nodes),
            "edges": [e.to_dict() for e in self.edges],
            "critical_path": list(self.critical_path),
            "cycles": [list(c) for c in self.cycles],
        }


@dataclass(frozen=True, slots=True)
class Progress:
    issues_done: int = 0
    issues_total: int = 0
    prs_merged: int = 0
    prs_total: int = 0
    percent: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": {"done": self.issues_done, "total": self.issues_total},
            "prs": {"merged": self.prs_merged, "total": self.prs_total},
            "percent": self.percent,
        }


@dataclass(frozen=True, slots=True)
class Blocker:
    type: str
    message: str
    issue: int | None = None
    pr: int | None = None
    blocked_by: int | None = None


@dataclass(frozen=True, slots=True)
class Risk:
    type: str
    message: str
    issue: int | None = None
    pr: int | None = None
    attempts: int | None = None
    active: int | None = None
    ceiling: int | None = None


@dataclass(frozen=True, slots=True)
class ActiveWork:
    issue: int
    title: str
    session: str | None = None


@dataclass(frozen=True, slots=True)
class ETAEstimate:
    """Remaining-time projection; minutes are whole numbers."""

    avg_implementation: int | None
    avg_review: int | None
    remaining_issues: int
    open_prs: int
    estimated_minutes: int | None
    confidence: str
    implementation_samples: int = 0
    review_samples: int = 0


@dataclass(slots=True)
class ProgramGraph:
    """Aggregate result of one discovery call.

    ``error`` is set (and everything else left empty) when the parent issue
    itself could not be read.  An empty ``sub_issues`` list without ``error``
    means no sub-issues were found.
    """

    parent: ParentIssue | None
    sub_issues: list[SubIssue] = field(default_factory=list)
    prs: list[LinkedPR] = field(default_factory=list)
    progress: Progress = field(default_factory=Progress)
    phase: str = "unknown"
    graph: DependencyGraph | None = None
    blockers: list[Blocker] = field(default_factory=list)
    risks: list[Risk] = field(default_factory=list)
    active_work: list[ActiveWork] = field(default_factory=list)
    etas: ETAEstimate | None = None
    next_steps: list[str] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def failed(cls, message: str) -> ProgramGraph:
        return cls(parent=None, error=message)

    @classmethod
    def without_sub_issues(cls, parent: ParentIssue) -> ProgramGraph:
        return cls(parent=parent)

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {
                "error": self.error,
                "parent": None,
                "sub_issues": [],
                "prs": [],
                "graph": None,
            }
        return {
            "parent": asdict(self.parent) if self.parent else None,
            "sub_issues": [asdict(si) for si in self.sub_issues],
            "prs": [asdict(pr) for pr in self.prs],
            "progress": self.progress.to_dict(),
            "phase": self.phase,
            "graph": self.graph.to_dict() if self.graph else None,
            "blockers": [asdict(b) for b in self.blockers],
            "risks": [asdict(r) for r in self.risks],
            "active_work": [asdict(w) for w in self.active_work],
            "etas": asdict(self.etas) if self.etas else None,
            "next_steps": list(self.next_steps),
        }
