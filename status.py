"""Status aggregation for a program: progress, phase, blockers, risks,
active work, ETA and next steps.

All functions are pure over the resolved sub-issues and PRs, except that
:func:`compute_eta` is handed the raw metrics records.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from config import CAPACITY_RISK_RATIO, RESEARCH_LABEL
from models import (
    ActiveWork,
    Blocker,
    DependencyGraph,
    ETAEstimate,
    LinkedPR,
    Progress,
    Risk,
    SubIssue,
)

logger = logging.getLogger(__name__)

PHASE_UNKNOWN = "unknown"
PHASE_DONE = "done"
PHASE_RESEARCH = "research"
PHASE_REWORK = "rework"
PHASE_REVIEW = "review"
PHASE_IMPLEMENTATION = "implementation"

PHASES = (
    PHASE_UNKNOWN,
    PHASE_DONE,
    PHASE_RESEARCH,
    PHASE_REWORK,
    PHASE_REVIEW,
    PHASE_IMPLEMENTATION,
)

_FAILED_STATUSES = ("failed", "abandoned")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# Progress and phase
# ---------------------------------------------------------------------------

def compute_progress(sub_issues: list[SubIssue], prs: list[LinkedPR]) -> Progress:
    issues_done = sum(1 for si in sub_issues if si.is_closed)
    prs_merged = sum(1 for pr in prs if pr.merged)
    total = len(sub_issues) + len(prs)
    percent = round_half_up(100 * (issues_done + prs_merged) / total) if total else 0
    return Progress(
        issues_done=issues_done,
        issues_total=len(sub_issues),
        prs_merged=prs_merged,
        prs_total=len(prs),
        percent=percent,
    )


def compute_phase(sub_issues: list[SubIssue], prs: list[LinkedPR]) -> str:
    """First matching phase, checked in lifecycle priority order."""
    if not sub_issues:
        return PHASE_UNKNOWN
    if all(si.is_closed for si in sub_issues) and all(pr.merged for pr in prs):
        return PHASE_DONE
    if not prs and any(si.is_open and RESEARCH_LABEL in si.labels for si in sub_issues):
        return PHASE_RESEARCH
    if any(pr.is_open and pr.changes_requested for pr in prs):
        return PHASE_REWORK
    if any(pr.is_open and not pr.merged and not pr.changes_requested for pr in prs):
        return PHASE_REVIEW
    return PHASE_IMPLEMENTATION


# ---------------------------------------------------------------------------
# Blockers, risks, active work
# ---------------------------------------------------------------------------

def find_blockers(sub_issues: list[SubIssue], prs: list[LinkedPR]) -> list[Blocker]:
    by_number = {si.number: si for si in sub_issues}
    blockers: list[Blocker] = []

    for sub in sub_issues:
        for dep in sub.dependencies:
            dep_issue = by_number.get(dep)
            if dep_issue is not None and dep_issue.is_open:
                blockers.append(Blocker(
                    type="dependency",
                    issue=sub.number,
                    blocked_by=dep,
                    message=f"#{sub.number} blocked by open #{dep}",
                ))

        if sub.is_human_only:
            blockers.append(Blocker(
                type="human_decision",
                issue=sub.number,
                message=f"#{sub.number} requires human decision",
            ))

        status = sub.pipeline_status
        if status is not None and status.status in _FAILED_STATUSES:
            blockers.append(Blocker(
                type="pipeline_failure",
                issue=sub.number,
                message=(
                    f"#{sub.number} pipeline {status.status}: "
                    f"{status.last_error or 'unknown error'}"
                ),
            ))

    for pr in prs:
        if pr.is_open and pr.changes_requested:
            blockers.append(Blocker(
                type="rework_needed",
                pr=pr.number,
                message=f"PR #{pr.number} needs rework",
            ))

    return blockers


def find_risks(
    sub_issues: list[SubIssue],
    prs: list[LinkedPR],
    *,
    active_slots: int | None = None,
    max_concurrent: int = 0,
    graph: DependencyGraph | None = None,
) -> list[Risk]:
    risks: list[Risk] = []

    for sub in sub_issues:
        status = sub.pipeline_status
        if status is not None and status.attempts >= 2:
            risks.append(Risk(
                type="repeated_failures",
                issue=sub.number,
                attempts=status.attempts,
                message=f"#{sub.number} has {status.attempts} attempts",
            ))
        if sub.is_human_only:
            risks.append(Risk(
                type="human_only",
                issue=sub.number,
                message=f"#{sub.number} requires human input",
            ))

    for pr in prs:
        if pr.changes_requested:
            risks.append(Risk(
                type="changes_requested",
                pr=pr.number,
                message=f"PR #{pr.number} has changes requested",
            ))

    if active_slots is not None and max_concurrent > 0:
        usage = active_slots / max_concurrent
        if usage >= CAPACITY_RISK_RATIO:
            risks.append(Risk(
                type="capacity",
                active=active_slots,
                ceiling=max_concurrent,
                message=(
                    f"Slot usage at {active_slots}/{max_concurrent} "
                    f"({round_half_up(usage * 100)}%)"
                ),
            ))

    if graph is not None:
        for cycle in graph.cycles:
            chain = " -> ".join(f"#{n}" for n in cycle + cycle[:1])
            risks.append(Risk(
                type="dependency_cycle",
                issue=cycle[0],
                message=f"Dependency cycle: {chain}",
            ))

    return risks


def find_active_work(sub_issues: list[SubIssue]) -> list[ActiveWork]:
    active: list[ActiveWork] = []
    for sub in sub_issues:
        if sub.tmux_session:
            active.append(ActiveWork(sub.number, sub.title, sub.tmux_session))
        elif sub.is_running:
            active.append(ActiveWork(sub.number, sub.title, None))
    return active


# ---------------------------------------------------------------------------
# ETA
# ---------------------------------------------------------------------------

def _successful_durations(records: Iterable[dict[str, Any]], *needles: str) -> list[float]:
    durations = []
    for rec in records:
        job = rec.get("job") or ""
        if not isinstance(job, str) or not any(n in job for n in needles):
            continue
        if rec.get("status") != "success":
            continue
        duration = rec.get("duration_s")
        if isinstance(duration, (int, float)) and not isinstance(duration, bool) and duration > 0:
            durations.append(float(duration))
    return durations


def _avg_minutes(durations: list[float]) -> int | None:
    if not durations:
        return None
    return round_half_up(sum(durations) / len(durations) / 60)


def compute_eta(
    sub_issues: list[SubIssue],
    prs: list[LinkedPR],
    records: list[dict[str, Any]] | None,
    max_concurrent: int,
) -> ETAEstimate | None:
    """Project remaining minutes from historical job durations.

    Implementation jobs are those whose name contains ``work``; review jobs
    contain ``review`` or ``pr``.  Only successful jobs with a positive
    duration count.  Returns ``None`` when there is no history or anything
    goes wrong while analysing it.
    """
    try:
        if not records:
            return None

        impl = _successful_durations(records, "work")
        review = _successful_durations(records, "review", "pr")
        avg_impl = _avg_minutes(impl)
        avg_review = _avg_minutes(review)

        remaining = sum(1 for si in sub_issues if si.is_open)
        open_prs = sum(1 for pr in prs if pr.is_open and not pr.merged)
        parallelism = min(remaining, max_concurrent)

        estimated: int | None = None
        confidence = "low"
        if avg_impl is not None and remaining > 0:
            if parallelism > 0:
                impl_minutes = math.ceil(remaining / parallelism) * avg_impl
            else:
                impl_minutes = remaining * avg_impl
            review_minutes = open_prs * avg_review if avg_review is not None else 0
            estimated = impl_minutes + review_minutes

            if len(impl) >= 5 and len(review) >= 3:
                confidence = "high"
            elif len(impl) >= 2:
                confidence = "medium"

        return ETAEstimate(
            avg_implementation=avg_impl,
            avg_review=avg_review,
            remaining_issues=remaining,
            open_prs=open_prs,
            estimated_minutes=estimated,
            confidence=confidence,
            implementation_samples=len(impl),
            review_samples=len(review),
        )
    except Exception as exc:
        logger.warning("ETA computation failed: %s", exc)
        return None


# ---------------------------------------------------------------------------
# Next steps
# ---------------------------------------------------------------------------

def compute_next_steps(sub_issues: list[SubIssue], prs: list[LinkedPR]) -> list[str]:
    steps: list[str] = []

    for pr in prs:
        if pr.is_open and not pr.merged and not pr.changes_requested:
            steps.append(f"PR #{pr.number} awaiting review/merge")

    closed = {si.number for si in sub_issues if si.is_closed}
    for sub in sub_issues:
        if not sub.is_open or sub.is_human_only or sub.is_active:
            continue
        if all(dep in closed for dep in sub.dependencies):
            steps.append(f"#{sub.number} is unblocked and ready for work")

    for sub in sub_issues:
        if not sub.is_open or not sub.is_active:
            continue
        waiting = [
            other.number for other in sub_issues
            if other.is_open and sub.number in other.dependencies
        ]
        if waiting:
            refs = ", ".join(f"#{n}" for n in waiting)
            steps.append(f"When #{sub.number} completes, it will unblock {refs}")

    for sub in sub_issues:
        if sub.is_open and sub.is_human_only:
            steps.append(f"Human decision needed on #{sub.number}")

    return steps
