"""Per-vehicle running totals.

``VehicleState`` is an immutable value threaded explicitly by the caller:
``advance_state`` takes the previous state and one record and returns the
next state. Nothing here is shared between vehicles.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from fleetpath.core.models import TelemetryRecord


@dataclass(frozen=True)
class VehicleState:
    vehicle_id: str
    last_timestamp: datetime | None = None
    last_fuel_level: float | None = None  # liters
    driving_minutes: float = 0.0
    fuel_used_liters: float = 0.0
    engine_hours: float = 0.0
    records_seen: int = 0

    def to_dict(self) -> dict:
        return {
            "vehicle_id": self.vehicle_id,
            "last_timestamp": self.last_timestamp.isoformat() if self.last_timestamp else None,
            "last_fuel_level": self.last_fuel_level,
            "driving_minutes": round(self.driving_minutes, 2),
            "fuel_used_liters": round(self.fuel_used_liters, 3),
            "engine_hours": round(self.engine_hours, 4),
            "records_seen": self.records_seen,
        }


def advance_state(state: VehicleState, record: TelemetryRecord) -> VehicleState:
    """Fold one record into the running totals.

    Time since the previous record counts as driving when the record is
    moving and as engine time when the engine runs. Fuel used accumulates
    level drops; a rise (refuel) only resets the reference level. Records
    older than the last one seen only update the counter.
    """
    if state.last_timestamp is not None and record.timestamp < state.last_timestamp:
        return replace(state, records_seen=state.records_seen + 1)

    elapsed_min = 0.0
    if state.last_timestamp is not None:
        elapsed_min = (record.timestamp - state.last_timestamp).total_seconds() / 60

    level = record.fuel.level if record.fuel is not None else None
    fuel_used = state.fuel_used_liters
    if level is not None and state.last_fuel_level is not None and level < state.last_fuel_level:
        fuel_used += state.last_fuel_level - level

    return replace(
        state,
        last_timestamp=record.timestamp,
        last_fuel_level=level if level is not None else state.last_fuel_level,
        driving_minutes=state.driving_minutes + (elapsed_min if record.gps.speed > 1 else 0.0),
        fuel_used_liters=fuel_used,
        engine_hours=state.engine_hours + (elapsed_min / 60 if record.engine_running else 0.0),
        records_seen=state.records_seen + 1,
    )
