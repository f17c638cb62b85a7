"""File-based storage implementation.

Stores telemetry records as JSON Lines, one file per vehicle per UTC day:

    base_dir/<vehicle_id>/YYYY/MM/DD.jsonl

Records are appended in arrival order; reads sort by timestamp.
"""

from __future__ import annotations

import json
import re
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from fleetpath.core.codec import record_from_dict, record_to_dict
from fleetpath.core.validation import InvalidInput

if TYPE_CHECKING:
    from fleetpath.core.models import TelemetryRecord

log = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _vehicle_dir_name(vehicle_id: str) -> str:
    """Filesystem-safe directory name for a vehicle id."""
    name = _UNSAFE_CHARS.sub("_", vehicle_id)
    # "." and ".." resolve to the base dir and its parent.
    if not name.strip("."):
        name = "_" + name
    return name


class FileTelemetryStorage:
    """TelemetryStorage backed by vehicle/day partitioned JSON Lines files."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def _day_file(self, vehicle_id: str, day: date, create: bool = False) -> Path:
        vehicle_dir = self._base_dir / _vehicle_dir_name(vehicle_id) / f"{day.year:04d}" / f"{day.month:02d}"
        if create:
            vehicle_dir.mkdir(parents=True, exist_ok=True)
        return vehicle_dir / f"{day.day:02d}.jsonl"

    async def store(self, record: TelemetryRecord) -> None:
        """Append a single record to its day file."""
        day = record.timestamp.astimezone(timezone.utc).date()
        path = self._day_file(record.vehicle_id, day, create=True)
        line = json.dumps(record_to_dict(record), separators=(",", ":"))
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

        log.debug("record_written", vehicle=record.vehicle_id, path=str(path))

    async def store_batch(self, records: list[TelemetryRecord]) -> None:
        """Store a batch of records."""
        for record in records:
            await self.store(record)

    def _read_file(self, path: Path) -> list[TelemetryRecord]:
        records = []
        with open(path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(record_from_dict(json.loads(line)))
                except (json.JSONDecodeError, InvalidInput):
                    log.warning("corrupt_record_skipped", path=str(path), line=line_no)
        return records

    async def read_range(self, vehicle_id: str, start: datetime, end: datetime) -> list[TelemetryRecord]:
        """Records with ``start <= timestamp < end``, ordered by timestamp."""
        if end <= start:
            return []

        records: list[TelemetryRecord] = []
        day = start.astimezone(timezone.utc).date()
        last_day = end.astimezone(timezone.utc).date()
        while day <= last_day:
            path = self._day_file(vehicle_id, day)
            if path.exists():
                records.extend(
                    r for r in self._read_file(path)
                    if r.vehicle_id == vehicle_id and start <= r.timestamp < end
                )
            day += timedelta(days=1)

        records.sort(key=lambda r: r.timestamp)
        return records
