"""Sampling density applied to a query before segmentation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from fleetpath.core.models import RESOLUTIONS, Resolution, TelemetryRecord
from fleetpath.core.validation import InvalidInput, ValidationIssue

# Seconds between kept samples for each resolution tier.
RESOLUTION_INTERVALS: dict[str, int] = {
    "high": 10,
    "medium": 60,
    "low": 300,
}


def interval_for(resolution: str) -> int:
    """Sampling interval in seconds for a resolution tier."""
    if isinstance(resolution, str) and resolution in RESOLUTION_INTERVALS:
        return RESOLUTION_INTERVALS[resolution]
    raise InvalidInput([ValidationIssue(
        "resolution",
        f"Resolution must be one of {', '.join(RESOLUTIONS)}",
        code="INVALID_VALUE",
        value=resolution,
    )])


def sample_records(records: Sequence[TelemetryRecord], interval_s: float) -> list[TelemetryRecord]:
    """Thin an ordered stream to one sample per ``interval_s``.

    Keeps the first sample, then each sample at least ``interval_s`` after
    the last kept one. The final sample is always kept.
    """
    if len(records) <= 2 or interval_s <= 0:
        return list(records)

    kept = [records[0]]
    for record in records[1:-1]:
        if (record.timestamp - kept[-1].timestamp).total_seconds() >= interval_s:
            kept.append(record)
    kept.append(records[-1])
    return kept


@dataclass(frozen=True)
class TimeRangePreset:
    label: str
    start_time: datetime
    end_time: datetime
    resolution: Resolution

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "resolution": self.resolution,
        }


def time_range_presets(now: datetime) -> list[TimeRangePreset]:
    """Common dashboard ranges ending at ``now``, days aligned to ``now``'s midnight."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = today - timedelta(days=1)
    return [
        TimeRangePreset("Last Hour", now - timedelta(hours=1), now, "high"),
        TimeRangePreset("Today", today, now, "medium"),
        TimeRangePreset("Yesterday", yesterday, today, "medium"),
        TimeRangePreset("Last 7 Days", today - timedelta(days=7), now, "low"),
        TimeRangePreset("Last 30 Days", today - timedelta(days=30), now, "low"),
    ]
