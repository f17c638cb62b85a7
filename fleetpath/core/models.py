"""fleetpath — core internal data models.

These are plain dataclasses with no framework dependencies.
JSON payloads are converted to/from these at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

SegmentType = Literal["transport", "working", "idle", "unknown"]
Resolution = Literal["high", "medium", "low"]
Severity = Literal["info", "warning", "error", "critical"]
PointEventType = Literal["start", "stop", "pause", "resume", "waypoint"]

SEGMENT_TYPES: tuple[str, ...] = ("transport", "working", "idle", "unknown")
RESOLUTIONS: tuple[str, ...] = ("high", "medium", "low")
SEVERITIES: tuple[str, ...] = ("info", "warning", "error", "critical")


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    altitude: float | None = None
    accuracy: float | None = None


# ---------------------------------------------------------------------------
# Raw telemetry (as received from vehicles)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GpsData:
    latitude: float
    longitude: float
    speed: float = 0.0  # km/h
    heading: float = 0.0  # degrees, [0, 360)
    altitude: float | None = None
    accuracy: float | None = None  # meters
    satellites: int | None = None
    hdop: float | None = None
    fix: str = "3d"  # "none", "2d", "3d" or "dgps"


@dataclass(frozen=True)
class EngineData:
    is_running: bool = False
    rpm: float | None = None
    load_percentage: float | None = None
    coolant_temperature: float | None = None  # celsius
    engine_hours: float | None = None
    fuel_rate: float | None = None  # l/h


@dataclass(frozen=True)
class FuelData:
    level: float | None = None  # liters
    percentage: float | None = None
    consumption: float | None = None  # l/h


@dataclass(frozen=True)
class ImplementData:
    is_active: bool = False
    type: str = ""
    width: float | None = None  # meters


@dataclass(frozen=True)
class TelemetryEvent:
    type: str
    timestamp: datetime
    severity: Severity = "info"
    description: str = ""
    acknowledged: bool = False


@dataclass(frozen=True)
class TelemetryRecord:
    vehicle_id: str
    timestamp: datetime
    gps: GpsData
    engine: EngineData | None = None
    fuel: FuelData | None = None
    implement: ImplementData | None = None
    task_id: str | None = None
    operator_id: str | None = None
    field_id: str | None = None
    events: tuple[TelemetryEvent, ...] = ()
    quality_score: float | None = None  # 0-100

    @property
    def is_working(self) -> bool:
        return self.implement is not None and self.implement.is_active

    @property
    def engine_running(self) -> bool:
        return self.engine is not None and self.engine.is_running

    @property
    def fuel_rate(self) -> float | None:
        """Instantaneous consumption in l/h, fuel sensor first."""
        if self.fuel is not None and self.fuel.consumption is not None:
            return self.fuel.consumption
        if self.engine is not None:
            return self.engine.fuel_rate
        return None


# ---------------------------------------------------------------------------
# Path model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PointMetadata:
    engine_running: bool | None = None
    is_working: bool | None = None
    task_id: str | None = None
    operator_id: str | None = None


@dataclass(frozen=True)
class PathPoint:
    id: str
    vehicle_id: str
    timestamp: datetime
    location: Location
    speed: float  # km/h
    heading: float
    accuracy: float = 0.0
    event_type: PointEventType | None = None
    metadata: PointMetadata = field(default_factory=PointMetadata)

    @property
    def is_working(self) -> bool:
        return bool(self.metadata.is_working)

    @property
    def is_moving(self) -> bool:
        return self.speed > 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "timestamp": self.timestamp.isoformat(),
            "location": {
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "altitude": self.location.altitude,
                "accuracy": self.location.accuracy,
            },
            "speed": self.speed,
            "heading": self.heading,
            "accuracy": self.accuracy,
            "event_type": self.event_type,
            "metadata": {
                "engine_running": self.metadata.engine_running,
                "is_working": self.metadata.is_working,
                "task_id": self.metadata.task_id,
                "operator_id": self.metadata.operator_id,
            },
        }


@dataclass(frozen=True)
class PathSegment:
    id: str
    vehicle_id: str
    start_time: datetime
    end_time: datetime
    points: tuple[PathPoint, ...]
    distance: float  # meters
    duration: float  # seconds
    average_speed: float  # km/h
    max_speed: float  # km/h
    type: SegmentType

    def to_dict(self, points: list[PathPoint] | tuple[PathPoint, ...] | None = None) -> dict:
        """JSON-serializable form. ``points`` overrides the emitted point list."""
        emitted = self.points if points is None else points
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "type": self.type,
            "distance_m": round(self.distance, 1),
            "duration_s": self.duration,
            "average_speed_kmh": round(self.average_speed, 2),
            "max_speed_kmh": round(self.max_speed, 2),
            "point_count": len(self.points),
            "points": [p.to_dict() for p in emitted],
        }


@dataclass(frozen=True)
class PathQuery:
    vehicle_ids: frozenset[str]
    start_time: datetime
    end_time: datetime
    resolution: Resolution = "medium"
