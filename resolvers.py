"""Per-sub-issue resolution: details, declared dependencies, linked PRs,
local pipeline status and live tmux window.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging
import re

from evidence import EvidenceFetcher
from github_connector import PullRequest
from local_state import match_pipeline_status
from models import LinkedPR, SubIssue
from session_controller import find_session_window

logger = logging.getLogger(__name__)

# Anywhere in a line, so "Status: open. **Blocked By:** #3" and table cells count
_BLOCKED_BY = re.compile(
    r"(?:\*\*)?\bBlocked[ \t]+By(?:\*\*)?:(?:\*\*)?[ \t]*(.+)",
    re.IGNORECASE,
)

_CLOSING_KEYWORDS = r"(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)"


def parse_dependencies(body: str) -> list[int]:
    """Issue numbers from the ``Blocked By:`` line, in order, without repeats.

    Only the first such line counts; a body without one has no dependencies.
    """
    match = _BLOCKED_BY.search(body or "")
    if not match:
        return []
    deps: list[int] = []
    for ref in re.findall(r"#(\d+)", match.group(1)):
        num = int(ref)
        if num not in deps:
            deps.append(num)
    return deps


def references_closing_keyword(body: str, issue_number: int) -> bool:
    """True if *body* says ``Closes #N`` / ``Fixes #N`` / ``Resolves #N``."""
    pattern = rf"\b{_CLOSING_KEYWORDS}:?\s+#{issue_number}\b"
    return re.search(pattern, body or "", re.IGNORECASE) is not None


def find_linked_prs(fetcher: EvidenceFetcher, issue_number: int) -> list[LinkedPR]:
    """PRs for *issue_number*, matched by branch name or closing keyword.

    Branch matches come first.  A PR is only inspected for a closing keyword
    (which costs a detail query) when its branch did not already match.
    """
    linked: list[LinkedPR] = []
    seen: set[int] = set()
    candidates = fetcher.pull_requests()

    branch_token = f"issue-{issue_number}"
    for pr in candidates:
        if branch_token in pr.head_ref_name and pr.number not in seen:
            seen.add(pr.number)
            linked.append(LinkedPR.from_pull_request(pr))

    for pr in candidates:
        if pr.number in seen:
            continue
        detail = fetcher.pull_request_detail(pr.number)
        if detail is None or not references_closing_keyword(detail.body, issue_number):
            continue
        seen.add(pr.number)
        linked.append(LinkedPR.from_pull_request(_merge_detail(pr, detail)))

    return linked


def _merge_detail(listed: PullRequest, detail: PullRequest) -> PullRequest:
    """The detail record wins, except for fields it left empty."""
    return PullRequest(
        number=listed.number,
        title=detail.title or listed.title,
        state=detail.state if detail.state != "UNKNOWN" else listed.state,
        head_ref_name=detail.head_ref_name or listed.head_ref_name,
        url=listed.url,
        review_decision=detail.review_decision or listed.review_decision,
        mergeable=detail.mergeable or listed.mergeable,
        merged_at=detail.merged_at or listed.merged_at,
        body=detail.body,
    )


def resolve_sub_issue(fetcher: EvidenceFetcher, number: int) -> SubIssue | None:
    """Build the :class:`SubIssue` for *number*; ``None`` if it cannot be read."""
    issue = fetcher.issue(number)
    if issue is None:
        logger.info("Dropping #%d: issue could not be fetched", number)
        return None

    return SubIssue(
        number=issue.number,
        title=issue.title,
        state=issue.state,
        labels=list(issue.labels),
        dependencies=parse_dependencies(issue.body),
        linked_prs=find_linked_prs(fetcher, issue.number),
        pipeline_status=match_pipeline_status(fetcher.state_items(), issue.number),
        tmux_session=find_session_window(fetcher.session_windows(), issue.number),
    )


def collect_prs(sub_issues: list[SubIssue]) -> list[LinkedPR]:
    """Every linked PR once, in first-seen order."""
    prs: list[LinkedPR] = []
    seen: set[int] = set()
    for sub in sub_issues:
        for pr in sub.linked_prs:
            if pr.number not in seen:
                seen.add(pr.number)
                prs.append(pr)
    return prs
