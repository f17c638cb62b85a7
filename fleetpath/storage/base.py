"""Storage interface (port) for telemetry records."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from fleetpath.core.models import TelemetryRecord


class TelemetryStorage(Protocol):
    """Port: persists telemetry records and reads them back per vehicle."""

    async def store(self, record: TelemetryRecord) -> None: ...

    async def store_batch(self, records: list[TelemetryRecord]) -> None: ...

    async def read_range(self, vehicle_id: str, start: datetime, end: datetime) -> list[TelemetryRecord]:
        """Records with ``start <= timestamp < end``, ordered by timestamp."""
        ...
