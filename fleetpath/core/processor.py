"""Telemetry processor — validates, stores and tracks incoming records.

This is the ingest business logic. It depends on the TelemetryStorage
protocol, not a concrete implementation. Invalid records are rejected one
by one; the rest of the request still goes through.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog

from fleetpath.core.codec import record_from_dict
from fleetpath.core.state import VehicleState, advance_state
from fleetpath.core.validation import InvalidInput, ValidationWarning, validate_record

if TYPE_CHECKING:
    from fleetpath.core.models import TelemetryRecord
    from fleetpath.core.stats import ServerStats
    from fleetpath.storage.base import TelemetryStorage

log = structlog.get_logger()


@dataclass
class IngestResult:
    stored: int = 0
    rejected: list[dict] = field(default_factory=list)
    warnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "accepted": self.stored > 0 or not self.rejected,
            "stored": self.stored,
            "rejected": self.rejected,
            "warnings": self.warnings,
        }


class TelemetryProcessor:
    """Validates incoming telemetry and writes accepted records to storage."""

    def __init__(self, storage: TelemetryStorage, stats: ServerStats) -> None:
        self._storage = storage
        self._stats = stats
        self._states: dict[str, VehicleState] = {}

    def vehicle_state(self, vehicle_id: str) -> VehicleState | None:
        return self._states.get(vehicle_id)

    def _out_of_order(self, record: TelemetryRecord, latest: dict[str, datetime]) -> bool:
        """Track the newest timestamp per vehicle; True if ``record`` is older.

        Storage and running state both order records by timestamp, so a late
        record is accepted and only reported.
        """
        previous = latest.get(record.vehicle_id)
        if previous is None:
            state = self._states.get(record.vehicle_id)
            previous = state.last_timestamp if state else None
        if previous is not None and record.timestamp < previous:
            return True
        latest[record.vehicle_id] = record.timestamp
        return False

    async def process_records(
        self,
        items: list[Any],
        size_bytes: int,
        now: datetime | None = None,
    ) -> IngestResult:
        """Validate and store raw JSON records. Returns per-record outcome."""
        now = now or datetime.now(timezone.utc)
        self._stats.record_request(len(items), size_bytes)
        result = IngestResult()

        accepted: list[tuple[int, TelemetryRecord]] = []
        latest: dict[str, datetime] = {}
        for index, item in enumerate(items):
            try:
                if not isinstance(item, dict):
                    raise TypeError("record must be a JSON object")
                record = record_from_dict(item)
            except (InvalidInput, TypeError) as exc:
                issues = exc.to_dict()["errors"] if isinstance(exc, InvalidInput) else [
                    {"field": "record", "message": str(exc), "code": "INVALID_TYPE", "value": None}
                ]
                result.rejected.append({"index": index, "errors": issues})
                continue

            validation = validate_record(record, now=now)
            if not validation.is_valid:
                result.rejected.append({
                    "index": index,
                    "vehicle_id": record.vehicle_id,
                    "errors": [e.to_dict() for e in validation.errors],
                })
                continue
            warnings = list(validation.warnings)
            if self._out_of_order(record, latest):
                warnings.append(ValidationWarning(
                    "timestamp", "Record is older than one already received for this vehicle",
                    "Check device clock and upload ordering",
                ))
            if warnings:
                result.warnings.append({
                    "index": index,
                    "vehicle_id": record.vehicle_id,
                    "warnings": [w.to_dict() for w in warnings],
                })
            accepted.append((index, record))

        # Running state must see each vehicle's records in time order.
        accepted.sort(key=lambda item: item[1].timestamp)
        for index, record in accepted:
            try:
                await self._storage.store(record)
            except OSError:
                log.error("storage_write_failed", vehicle=record.vehicle_id, exc_info=True)
                self._stats.record_storage_error()
                result.rejected.append({
                    "index": index,
                    "vehicle_id": record.vehicle_id,
                    "errors": [{"field": "record", "message": "storage write failed",
                                "code": "STORAGE_ERROR", "value": None}],
                })
                continue
            result.stored += 1
            self._stats.record_stored(record.vehicle_id)
            state = self._states.get(record.vehicle_id) or VehicleState(vehicle_id=record.vehicle_id)
            self._states[record.vehicle_id] = advance_state(state, record)

        if result.rejected:
            self._stats.record_rejected(len(result.rejected))
            log.info("telemetry_rejected", count=len(result.rejected))
        if result.warnings:
            self._stats.record_warnings(sum(len(w["warnings"]) for w in result.warnings))
        if result.stored:
            log.info("telemetry_stored", count=result.stored)

        return result
