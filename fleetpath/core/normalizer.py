"""Point normalizer — raw telemetry records to ordered PathPoints.

This is the validation boundary: every record is checked here and the
stream must be non-decreasing in time and belong to a single vehicle.
"""

from __future__ import annotations

from typing import Sequence

from fleetpath.core.models import Location, PathPoint, PointMetadata, TelemetryRecord
from fleetpath.core.validation import InvalidInput, ValidationIssue, check_stream_order, ensure_valid


def point_id(vehicle_id: str, record: TelemetryRecord) -> str:
    return f"{vehicle_id}_{int(record.timestamp.timestamp() * 1000)}"


def record_to_point(record: TelemetryRecord) -> PathPoint:
    """Convert one record without validating it."""
    gps = record.gps
    return PathPoint(
        id=point_id(record.vehicle_id, record),
        vehicle_id=record.vehicle_id,
        timestamp=record.timestamp,
        location=Location(
            latitude=gps.latitude,
            longitude=gps.longitude,
            altitude=gps.altitude,
            accuracy=gps.accuracy,
        ),
        speed=gps.speed,
        heading=gps.heading,
        accuracy=gps.accuracy or 0.0,
        metadata=PointMetadata(
            engine_running=record.engine.is_running if record.engine is not None else None,
            is_working=record.implement.is_active if record.implement is not None else None,
            task_id=record.task_id,
            operator_id=record.operator_id,
        ),
    )


def telemetry_to_path_points(records: Sequence[TelemetryRecord]) -> list[PathPoint]:
    """Validate a single vehicle's ordered records and convert them.

    Raises:
        InvalidInput: a record fails validation, timestamps go backwards, or
            the stream mixes vehicles.
    """
    if not records:
        return []

    vehicle_id = records[0].vehicle_id
    for record in records:
        if record.vehicle_id != vehicle_id:
            raise InvalidInput(
                [ValidationIssue("vehicle_id", "Stream mixes several vehicles",
                                 code="MIXED_VEHICLES", value=record.vehicle_id)],
                vehicle_id=vehicle_id,
            )
        ensure_valid(record)

    check_stream_order(records)
    return [record_to_point(r) for r in records]
