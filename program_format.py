"""Renderers for a :class:`~models.ProgramGraph`.

- :func:`format_plain_text` — terminal report
- :func:`format_slack` — condensed Slack mrkdwn
- :func:`format_github` — issue comment with a sentinel so it can be
  updated in place
- :func:`format_json` — raw data

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from config import APPROVED, STATUS_SENTINEL
from models import LinkedPR, ProgramGraph, SubIssue


def status_sentinel(parent_number: int | str) -> str:
    """Hidden marker identifying the status comment of *parent_number*."""
    return f"<!-- {STATUS_SENTINEL}: {parent_number} -->"


def _progress_bar(percent: int, width: int, full: str, empty: str) -> str:
    filled = int(width * percent / 100 + 0.5)
    return full * filled + empty * (width - filled)


def _refs(numbers: list[int]) -> str:
    return ", ".join(f"#{n}" for n in numbers)


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ── Plain text ───────────────────────────────────────────────────────────────

def format_plain_text(program: ProgramGraph) -> str:
    if program.error is not None:
        return f"Error: {program.error}"

    parent = program.parent
    header = f"Program Status: {parent.title} (#{parent.number})"
    if not program.sub_issues:
        return (
            f"{header}\n{'=' * 60}\n\n"
            "No sub-issues found for this issue.\n"
            "This issue may not be a program parent, "
            "or sub-issues haven't been created yet."
        )

    p = program.progress
    lines = [
        header,
        "=" * 60,
        f"Phase: {program.phase.upper()} | Progress: "
        f"{p.issues_done}/{p.issues_total} sub-issues done, "
        f"{p.prs_merged}/{p.prs_total} PRs merged ({p.percent}%)",
        "",
        f"  [{_progress_bar(p.percent, 30, '#', '-')}] {p.percent}%",
        "",
        "Sub-Issues:",
    ]

    for sub in program.sub_issues:
        check = "x" if sub.is_closed else " "
        flags = []
        if sub.is_running:
            flags.append("running")
        if sub.tmux_session:
            flags.append("ACTIVE")
        flag_str = f" [{', '.join(flags)}]" if flags else ""
        lines.append(
            f"  [{check}] #{sub.number}: {sub.title} ({sub.state.lower()}){flag_str}"
        )
        if sub.dependencies:
            lines.append(f"        Blocked by: {_refs(sub.dependencies)}")
        for pr in sub.linked_prs:
            pr_state = "MERGED" if pr.merged else pr.state
            if pr.changes_requested:
                extra = " (rework needed)"
            elif pr.review_decision == APPROVED:
                extra = " (approved)"
            else:
                extra = ""
            lines.append(f"        PR #{pr.number}: {pr_state}{extra}")
        if sub.is_human_only:
            lines.append("        human-only")
    lines.append("")

    graph = program.graph
    if graph is not None and graph.edges:
        lines.append("Dependency Chain:")
        linked = set()
        for edge in graph.edges:
            lines.append(f"  #{edge.source} --> #{edge.target}")
            linked.update((edge.source, edge.target))
        for node in graph.nodes:
            if node not in linked:
                lines.append(f"  #{node} (independent)")
        if graph.critical_path:
            chain = " -> ".join(f"#{n}" for n in graph.critical_path)
            lines.append(f"  Critical path: {chain}")
        for cycle in graph.cycles:
            chain = " -> ".join(f"#{n}" for n in cycle + cycle[:1])
            lines.append(f"  Cycle: {chain}")
        lines.append("")

    if program.blockers:
        lines.append("Blockers:")
        lines.extend(f"  [{b.type}] {b.message}" for b in program.blockers)
        lines.append("")

    if program.active_work:
        lines.append("Active Work:")
        for work in program.active_work:
            session = f" (tmux: {work.session})" if work.session else ""
            lines.append(f"  #{work.issue}: {work.title}{session}")
        lines.append("")

    eta = program.etas
    if eta is not None:
        lines.append("ETAs:")
        parts = []
        if eta.avg_implementation is not None:
            parts.append(f"Avg implementation: {eta.avg_implementation} min")
        if eta.avg_review is not None:
            parts.append(f"Avg review: {eta.avg_review} min")
        if parts:
            lines.append(f"  {' | '.join(parts)}")
        lines.append(
            f"  Remaining: {eta.remaining_issues} issues, {eta.open_prs} open PRs"
        )
        if eta.estimated_minutes is not None:
            lines.append(
                f"  Estimated: ~{eta.estimated_minutes} min remaining "
                f"({eta.confidence} confidence)"
            )
        lines.append("")

    if program.next_steps:
        lines.append("Next Steps:")
        for i, step in enumerate(program.next_steps, 1):
            lines.append(f"  {i}. {step}")

    return "\n".join(lines).rstrip("\n")


# ── Slack ────────────────────────────────────────────────────────────────────

def _slack_emoji(sub: SubIssue) -> str:
    if sub.is_closed:
        return ":white_check_mark:"
    if sub.tmux_session:
        return ":arrows_counterclockwise:"
    if sub.is_human_only:
        return ":raising_hand:"
    return ":radio_button:"


def format_slack(program: ProgramGraph) -> str:
    if program.error is not None:
        return f":x: Error: {program.error}"

    parent = program.parent
    title = f":clipboard: *Program Status: {parent.title} (#{parent.number})*"
    if not program.sub_issues:
        return f"{title}\n\nNo sub-issues found."

    p = program.progress
    lines = [
        title,
        f"*Phase:* {program.phase.upper()} | *Progress:* {p.percent}% "
        f"({p.issues_done}/{p.issues_total} issues, "
        f"{p.prs_merged}/{p.prs_total} PRs)",
        "",
    ]
    lines.extend(
        f"{_slack_emoji(sub)} #{sub.number}: {sub.title}" for sub in program.sub_issues
    )

    if program.blockers:
        lines += ["", "*Blockers:*"]
        lines.extend(f":warning: {b.message}" for b in program.blockers)

    if program.next_steps:
        lines += ["", "*Next Steps:*"]
        lines.extend(f":arrow_right: {step}" for step in program.next_steps[:3])

    return "\n".join(lines)


# ── GitHub markdown ──────────────────────────────────────────────────────────

def _github_status(sub: SubIssue) -> str:
    if sub.is_closed:
        return ":white_check_mark: Done"
    if sub.tmux_session:
        return ":arrows_counterclockwise: Active"
    if sub.is_human_only:
        return ":bust_in_silhouette: Human"
    if sub.is_running:
        return ":gear: Running"
    return ":radio_button: Open"


def _github_pr_state(pr: LinkedPR) -> str:
    if pr.merged:
        return ":purple_circle: Merged"
    if pr.changes_requested:
        return ":red_circle: Rework"
    if pr.review_decision == APPROVED:
        return ":green_circle: Approved"
    return ":yellow_circle: Open"


def _cell(text: str) -> str:
    return text.replace("|", "\\|")


def format_github(program: ProgramGraph, *, now: str | None = None) -> str:
    """Markdown status comment starting with the parent's sentinel."""
    if program.error is not None:
        return f"{status_sentinel('error')}\n**Error:** {program.error}"

    sentinel = status_sentinel(program.parent.number)
    if not program.sub_issues:
        return f"{sentinel}\n## Program Status\n\nNo sub-issues found for this issue."

    p = program.progress
    bar = _progress_bar(p.percent, 20, "█", "░")
    lines = [
        sentinel,
        "## Program Status",
        "",
        f"**Phase:** {program.phase.upper()} | **Progress:** {p.percent}%",
        f"`{bar}` {p.issues_done}/{p.issues_total} issues done, "
        f"{p.prs_merged}/{p.prs_total} PRs merged",
        "",
        "| Issue | Title | Status | PR | Blocked By |",
        "|-------|-------|--------|-----|------------|",
    ]
    for sub in program.sub_issues:
        pr_links = ", ".join(
            f"#{pr.number} ({_github_pr_state(pr)})" for pr in sub.linked_prs
        ) or "-"
        deps = _refs(sub.dependencies) or "-"
        lines.append(
            f"| #{sub.number} | {_cell(sub.title)} | {_github_status(sub)} "
            f"| {pr_links} | {deps} |"
        )
    lines.append("")

    if program.blockers:
        lines.append("### Blockers")
        lines.extend(f"- :warning: **{b.type}**: {b.message}" for b in program.blockers)
        lines.append("")

    if program.active_work:
        lines.append("### Active Work")
        lines.extend(f"- :gear: #{w.issue}: {w.title}" for w in program.active_work)
        lines.append("")

    eta = program.etas
    if eta is not None and eta.estimated_minutes is not None:
        lines += [
            "### ETAs",
            f"- Estimated: ~{eta.estimated_minutes} min remaining "
            f"({eta.confidence} confidence)",
            f"- Remaining: {eta.remaining_issues} issues, {eta.open_prs} open PRs",
            "",
        ]

    if program.next_steps:
        lines.append("### Next Steps")
        lines.extend(f"{i}. {step}" for i, step in enumerate(program.next_steps, 1))
        lines.append("")

    lines += ["---", f"*Updated: {now or _now_iso()} by program-mgr*"]
    return "\n".join(lines)


# ── JSON ─────────────────────────────────────────────────────────────────────

def format_json(program: ProgramGraph) -> str:
    return json.dumps(program.to_dict(), indent=2)
