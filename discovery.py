"""Sub-issue discovery.

Programs are not declared in one place: the planner writes a hidden marker,
humans write "Superseded by #12, #13", triage tables list ``| #14 |`` rows,
and the pipeline records ``parent_issue`` in its state files.  Each source
is handled by an independent strategy (evidence in, id set out) and the
results are unioned.  When none of them finds anything, recent issues are
scanned for a plain ``#N`` reference to the parent.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterable

from config import SUB_ISSUES_MARKER
from evidence import EvidenceFetcher
from github_connector import Issue
from local_state import StateItem

logger = logging.getLogger(__name__)

_ISSUE_REF = re.compile(r"#(\d+)")

_MARKER = re.compile(
    r"<!--\s*" + re.escape(SUB_ISSUES_MARKER) + r":\s*([\d,\s]+?)\s*-->"
)

_SUPERSEDED = re.compile(
    r"[Ss]uperseded by.*?(#\d+(?:\s*(?:,|\band\b|&)\s*#\d+)*)",
    re.DOTALL,
)

# Lookahead on the closing pipe so adjacent cells (| #4 | #5 |) both match
_TABLE_CELL = re.compile(r"\|\s*#(\d+)\s*(?=\|)")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def find_marker_ids(texts: Iterable[str]) -> set[int]:
    """Ids from ``<!-- zapat-sub-issues: 1, 2, 3 -->`` markers."""
    found: set[int] = set()
    for text in texts:
        for match in _MARKER.finditer(text):
            for part in match.group(1).split(","):
                part = part.strip()
                if part.isdigit():
                    found.add(int(part))
    return found


def find_superseded_ids(texts: Iterable[str]) -> set[int]:
    """Ids listed after "Superseded by …" (commas or "and" between refs)."""
    found: set[int] = set()
    for text in texts:
        for match in _SUPERSEDED.finditer(text):
            found.update(int(n) for n in _ISSUE_REF.findall(match.group(1)))
    return found


def find_table_ids(texts: Iterable[str]) -> set[int]:
    """Ids from markdown table cells holding nothing but ``#N``."""
    found: set[int] = set()
    for text in texts:
        found.update(int(n) for n in _TABLE_CELL.findall(text))
    return found


def find_state_linked_ids(items: Iterable[StateItem], parent_number: int) -> set[int]:
    """Ids of local state records whose ``parent_issue`` is the parent."""
    found: set[int] = set()
    for name, data in items:
        parent = data.get("parent_issue")
        if parent is None or str(parent) != str(parent_number):
            continue
        try:
            found.add(int(data.get("number")))
        except (TypeError, ValueError, OverflowError):
            logger.debug("State file %s has no usable number", name)
    return found


def find_referencing_ids(issues: Iterable[Issue], parent_number: int) -> set[int]:
    """Ids of issues whose body mentions ``#parent`` (not ``#parent0``)."""
    ref = re.compile(rf"#{parent_number}(?!\d)")
    return {
        issue.number
        for issue in issues
        if issue.number != parent_number and issue.body and ref.search(issue.body)
    }


TEXT_STRATEGIES: tuple[Callable[[Iterable[str]], set[int]], ...] = (
    find_marker_ids,
    find_superseded_ids,
    find_table_ids,
)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def collect_text_evidence(fetcher: EvidenceFetcher, parent_number: int) -> list[str]:
    """Parent body followed by every comment body, in order."""
    parent = fetcher.issue(parent_number)
    texts = [parent.body if parent else ""]
    texts.extend(body for body in fetcher.comment_bodies(parent_number) if body)
    return texts


def discover_sub_issue_numbers(
    fetcher: EvidenceFetcher,
    parent_number: int,
) -> list[int]:
    """Sorted, de-duplicated sub-issue ids of *parent_number*.

    An empty list is a valid answer, not an error.
    """
    texts = collect_text_evidence(fetcher, parent_number)

    found: set[int] = set()
    per_strategy: dict[str, Any] = {}
    for strategy in TEXT_STRATEGIES:
        ids = strategy(texts)
        per_strategy[strategy.__name__] = sorted(ids)
        found |= ids

    linked = find_state_linked_ids(fetcher.state_items(), parent_number)
    per_strategy[find_state_linked_ids.__name__] = sorted(linked)
    found |= linked

    if not found:
        found = find_referencing_ids(fetcher.recent_issues(), parent_number)
        per_strategy[find_referencing_ids.__name__] = sorted(found)

    logger.debug("Sub-issue evidence for #%d: %s", parent_number, per_strategy)
    found.discard(parent_number)
    return sorted(found)
