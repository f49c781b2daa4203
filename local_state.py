"""Local pipeline state: per-item state files, work slots and metrics.

The pipeline scripts write one JSON file per work item under
``state/items`` (e.g. ``acme_widgets_issue_42.json``), one ``.pid`` file per
occupied work slot, and append one JSON line per finished job to
``data/metrics.jsonl``.  Everything here is read-only; unreadable or
malformed records are skipped.

Author: Ahmed Adel Bakr Alderai
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from config import METRICS_FILE, STATE_ITEMS_DIR, WORK_SLOTS_DIR
from models import PipelineStatus

logger = logging.getLogger(__name__)

StateItem = tuple[str, dict[str, Any]]


class StateStore:
    """Reader for ``state/items/*.json`` and ``state/agent-work-slots``."""

    def __init__(
        self,
        items_dir: Path = STATE_ITEMS_DIR,
        slots_dir: Path = WORK_SLOTS_DIR,
    ) -> None:
        self.items_dir = items_dir
        self.slots_dir = slots_dir

    def load_items(self) -> list[StateItem]:
        """Return ``(file name, record)`` pairs sorted by file name."""
        if not self.items_dir.is_dir():
            return []

        items: list[StateItem] = []
        try:
            paths = sorted(self.items_dir.glob("*.json"))
        except OSError as exc:
            logger.warning("Cannot list %s: %s", self.items_dir, exc)
            return []

        for path in paths:
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.debug("Skipping unreadable state file %s: %s", path.name, exc)
                continue
            if isinstance(data, dict):
                items.append((path.name, data))
        return items

    def active_slots(self) -> int | None:
        """Number of occupied work slots, or ``None`` if slots are not tracked."""
        if not self.slots_dir.is_dir():
            return None
        try:
            return sum(1 for _ in self.slots_dir.glob("*.pid"))
        except OSError as exc:
            logger.warning("Cannot list %s: %s", self.slots_dir, exc)
            return None


def match_pipeline_status(
    items: list[StateItem],
    issue_number: int,
) -> PipelineStatus | None:
    """Status record from the first state file named ``*_{issue_number}.json``."""
    suffix = f"_{issue_number}.json"
    for name, data in items:
        if suffix in name:
            return PipelineStatus.from_dict(data)
    return None


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class MetricsLog:
    """Reader for the JSONL job-metrics log."""

    def __init__(self, path: Path = METRICS_FILE) -> None:
        self.path = path

    def read(
        self,
        *,
        days: int | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Return metric records, optionally limited to the last *days* days.

        With *days* set, records whose ``timestamp`` is missing or
        unparseable are dropped along with the old ones.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            logger.warning("Cannot read metrics log %s: %s", self.path, exc)
            return []

        records: list[dict[str, Any]] = []
        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict):
                records.append(entry)

        if days is None:
            return records

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        recent = []
        for entry in records:
            ts = _parse_timestamp(entry.get("timestamp"))
            if ts is not None and ts >= cutoff:
                recent.append(entry)
        return recent
