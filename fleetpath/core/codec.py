"""JSON <-> TelemetryRecord conversion.

Used by the HTTP adapter for incoming payloads and by file storage for
its JSON Lines files. Timestamps are ISO 8601 strings or epoch
milliseconds; naive values are taken as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fleetpath.core.models import (
    EngineData,
    FuelData,
    GpsData,
    ImplementData,
    TelemetryEvent,
    TelemetryRecord,
)
from fleetpath.core.validation import InvalidInput, ValidationIssue


def parse_timestamp(value: Any, field_name: str = "timestamp") -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise InvalidInput([ValidationIssue(field_name, "Epoch timestamp is out of range",
                                                code="INVALID_TYPE", value=str(value))]) from None
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            raise InvalidInput([ValidationIssue(field_name, "Timestamp is not ISO 8601",
                                                code="INVALID_TYPE", value=value)]) from None
    else:
        raise InvalidInput([ValidationIssue(field_name, "Valid timestamp is required",
                                            code="INVALID_TYPE", value=value)])
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _opt_float(data: dict, key: str) -> float | None:
    value = data.get(key)
    return None if value is None else float(value)


def _opt_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    return None if value is None else int(value)


def _parse_gps(data: dict) -> GpsData:
    return GpsData(
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        speed=float(data.get("speed", 0.0)),
        heading=float(data.get("heading", 0.0)),
        altitude=_opt_float(data, "altitude"),
        accuracy=_opt_float(data, "accuracy"),
        satellites=_opt_int(data, "satellites"),
        hdop=_opt_float(data, "hdop"),
        fix=data.get("fix", "3d"),
    )


def _parse_engine(data: dict) -> EngineData:
    return EngineData(
        is_running=bool(data.get("is_running", False)),
        rpm=_opt_float(data, "rpm"),
        load_percentage=_opt_float(data, "load_percentage"),
        coolant_temperature=_opt_float(data, "coolant_temperature"),
        engine_hours=_opt_float(data, "engine_hours"),
        fuel_rate=_opt_float(data, "fuel_rate"),
    )


def _parse_fuel(data: dict) -> FuelData:
    return FuelData(
        level=_opt_float(data, "level"),
        percentage=_opt_float(data, "percentage"),
        consumption=_opt_float(data, "consumption"),
    )


def _parse_implement(data: dict) -> ImplementData:
    return ImplementData(
        is_active=bool(data.get("is_active", False)),
        type=data.get("type", ""),
        width=_opt_float(data, "width"),
    )


def _parse_event(data: dict) -> TelemetryEvent:
    return TelemetryEvent(
        type=data["type"],
        timestamp=parse_timestamp(data["timestamp"], "events.timestamp"),
        severity=data.get("severity", "info"),
        description=data.get("description", ""),
        acknowledged=bool(data.get("acknowledged", False)),
    )


def record_from_dict(data: dict) -> TelemetryRecord:
    """Parse a JSON object into a TelemetryRecord.

    Raises:
        InvalidInput: required keys are missing or have the wrong type.
    """
    try:
        gps = data["gps"]
        return TelemetryRecord(
            vehicle_id=str(data.get("vehicle_id", "")),
            timestamp=parse_timestamp(data.get("timestamp")),
            gps=_parse_gps(gps),
            engine=_parse_engine(data["engine"]) if data.get("engine") else None,
            fuel=_parse_fuel(data["fuel"]) if data.get("fuel") else None,
            implement=_parse_implement(data["implement"]) if data.get("implement") else None,
            task_id=data.get("task_id"),
            operator_id=data.get("operator_id"),
            field_id=data.get("field_id"),
            events=tuple(_parse_event(e) for e in data.get("events", [])),
            quality_score=_opt_float(data, "quality_score"),
        )
    except InvalidInput:
        raise
    except KeyError as exc:
        raise InvalidInput(
            [ValidationIssue(str(exc.args[0]), "Required field is missing", code="REQUIRED_FIELD")],
            vehicle_id=str(data.get("vehicle_id", "")),
        ) from None
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidInput(
            [ValidationIssue("record", f"Malformed record: {exc}", code="INVALID_TYPE")],
            vehicle_id=str(data.get("vehicle_id", "")) if isinstance(data, dict) else "",
        ) from None


def record_to_dict(record: TelemetryRecord) -> dict:
    gps = record.gps
    data: dict[str, Any] = {
        "vehicle_id": record.vehicle_id,
        "timestamp": record.timestamp.isoformat(),
        "gps": {
            "latitude": gps.latitude,
            "longitude": gps.longitude,
            "speed": gps.speed,
            "heading": gps.heading,
            "altitude": gps.altitude,
            "accuracy": gps.accuracy,
            "satellites": gps.satellites,
            "hdop": gps.hdop,
            "fix": gps.fix,
        },
        "task_id": record.task_id,
        "operator_id": record.operator_id,
        "field_id": record.field_id,
        "events": [
            {
                "type": e.type,
                "timestamp": e.timestamp.isoformat(),
                "severity": e.severity,
                "description": e.description,
                "acknowledged": e.acknowledged,
            }
            for e in record.events
        ],
        "quality_score": record.quality_score,
    }
    if record.engine is not None:
        e = record.engine
        data["engine"] = {
            "is_running": e.is_running,
            "rpm": e.rpm,
            "load_percentage": e.load_percentage,
            "coolant_temperature": e.coolant_temperature,
            "engine_hours": e.engine_hours,
            "fuel_rate": e.fuel_rate,
        }
    if record.fuel is not None:
        data["fuel"] = {
            "level": record.fuel.level,
            "percentage": record.fuel.percentage,
            "consumption": record.fuel.consumption,
        }
    if record.implement is not None:
        data["implement"] = {
            "is_active": record.implement.is_active,
            "type": record.implement.type,
            "width": record.implement.width,
        }
    return data
