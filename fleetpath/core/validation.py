"""Telemetry validation.

Errors reject a record; warnings are advisory and never block processing.
``InvalidInput`` is the only exception raised for bad data. Everything
downstream of this module assumes well-formed input.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from fleetpath.core.models import EngineData, FuelData, GpsData, TelemetryRecord

# Warning thresholds.
POOR_ACCURACY_M = 100
MIN_SATELLITES = 4
HIGH_SPEED_KMH = 100
HIGH_RPM = 5000
HIGH_COOLANT_C = 110
LOW_COOLANT_C = -40
LOW_FUEL_PERCENT = 10
HIGH_CONSUMPTION_LPH = 100
CLOCK_SKEW_MINUTES = 60


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    code: str
    value: Any = None

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "code": self.code, "value": self.value}


@dataclass(frozen=True)
class ValidationWarning:
    field: str
    message: str
    suggestion: str = ""

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "suggestion": self.suggestion}


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, field_name: str, message: str, code: str = "INVALID_RANGE", value: Any = None) -> None:
        self.errors.append(ValidationIssue(field_name, message, code, value))

    def warn(self, field_name: str, message: str, suggestion: str = "") -> None:
        self.warnings.append(ValidationWarning(field_name, message, suggestion))


class InvalidInput(ValueError):
    """Raised when telemetry fails validation."""

    def __init__(self, issues: Sequence[ValidationIssue], vehicle_id: str = "") -> None:
        self.issues = list(issues)
        self.vehicle_id = vehicle_id
        summary = "; ".join(f"{i.field}: {i.message}" for i in self.issues) or "invalid input"
        prefix = f"vehicle {vehicle_id}: " if vehicle_id else ""
        super().__init__(prefix + summary)

    def to_dict(self) -> dict:
        return {
            "vehicle_id": self.vehicle_id,
            "errors": [i.to_dict() for i in self.issues],
        }


def _finite(result: ValidationResult, field_name: str, value: float | None) -> bool:
    """False, with an error recorded, when ``value`` is NaN or infinite."""
    if value is None or math.isfinite(value):
        return True
    result.error(field_name, "Value must be a finite number", code="INVALID_TYPE", value=str(value))
    return False


def _check_gps(gps: GpsData, result: ValidationResult) -> None:
    if _finite(result, "gps.latitude", gps.latitude) and not -90 <= gps.latitude <= 90:
        result.error("gps.latitude", "Latitude must be between -90 and 90", value=gps.latitude)
    if _finite(result, "gps.longitude", gps.longitude) and not -180 <= gps.longitude <= 180:
        result.error("gps.longitude", "Longitude must be between -180 and 180", value=gps.longitude)
    _finite(result, "gps.altitude", gps.altitude)
    _finite(result, "gps.hdop", gps.hdop)

    if gps.accuracy is not None and _finite(result, "gps.accuracy", gps.accuracy):
        if gps.accuracy < 0:
            result.error("gps.accuracy", "GPS accuracy cannot be negative", value=gps.accuracy)
        elif gps.accuracy > POOR_ACCURACY_M:
            result.warn("gps.accuracy", f"GPS accuracy is poor (>{POOR_ACCURACY_M}m)",
                        "Check GPS antenna and satellite visibility")

    if gps.satellites is not None and gps.satellites < MIN_SATELLITES:
        result.warn("gps.satellites", "Low satellite count for reliable positioning",
                    "Check GPS antenna position and clear sky view")

    if _finite(result, "gps.speed", gps.speed):
        if gps.speed < 0:
            result.error("gps.speed", "Speed cannot be negative", value=gps.speed)
        elif gps.speed > HIGH_SPEED_KMH:
            result.warn("gps.speed", "Very high speed detected", "Verify speed sensor calibration")

    if _finite(result, "gps.heading", gps.heading) and not 0 <= gps.heading < 360:
        result.error("gps.heading", "Heading must be between 0 and 359.99 degrees", value=gps.heading)


def _check_engine(engine: EngineData, result: ValidationResult) -> None:
    if engine.rpm is not None and _finite(result, "engine.rpm", engine.rpm):
        if engine.rpm < 0:
            result.error("engine.rpm", "RPM cannot be negative", value=engine.rpm)
        elif engine.rpm > HIGH_RPM:
            result.warn("engine.rpm", "Very high RPM detected",
                        "Check engine operation and load conditions")

    temp = engine.coolant_temperature
    if temp is not None and _finite(result, "engine.coolant_temperature", temp):
        if temp > HIGH_COOLANT_C:
            result.warn("engine.coolant_temperature", "High coolant temperature detected",
                        "Check cooling system and engine load")
        elif temp < LOW_COOLANT_C:
            result.warn("engine.coolant_temperature", "Very low coolant temperature",
                        "Check temperature sensor functionality")

    load = engine.load_percentage
    if load is not None and _finite(result, "engine.load_percentage", load) and not 0 <= load <= 100:
        result.error("engine.load_percentage", "Load percentage must be between 0 and 100", value=load)

    hours = engine.engine_hours
    if hours is not None and _finite(result, "engine.engine_hours", hours) and hours < 0:
        result.error("engine.engine_hours", "Engine hours cannot be negative", value=hours)

    rate = engine.fuel_rate
    if rate is not None and _finite(result, "engine.fuel_rate", rate) and rate < 0:
        result.error("engine.fuel_rate", "Fuel rate cannot be negative", value=rate)


def _check_fuel(fuel: FuelData, result: ValidationResult) -> None:
    if fuel.level is not None and _finite(result, "fuel.level", fuel.level) and fuel.level < 0:
        result.error("fuel.level", "Fuel level cannot be negative", value=fuel.level)

    if fuel.percentage is not None and _finite(result, "fuel.percentage", fuel.percentage):
        if not 0 <= fuel.percentage <= 100:
            result.error("fuel.percentage", "Fuel percentage must be between 0 and 100",
                         value=fuel.percentage)
        elif fuel.percentage < LOW_FUEL_PERCENT:
            result.warn("fuel.percentage", "Low fuel level detected", "Schedule refueling soon")

    if fuel.consumption is not None and _finite(result, "fuel.consumption", fuel.consumption):
        if fuel.consumption < 0:
            result.error("fuel.consumption", "Fuel consumption cannot be negative", value=fuel.consumption)
        elif fuel.consumption > HIGH_CONSUMPTION_LPH:
            result.warn("fuel.consumption", "Very high fuel consumption detected",
                        "Check engine efficiency and operating conditions")


def _check_cross_fields(record: TelemetryRecord, result: ValidationResult) -> None:
    engine = record.engine
    if engine is None:
        return

    if record.gps.speed > 1 and not engine.is_running:
        result.warn("gps.speed", "Vehicle appears to be moving with engine off",
                    "Check GPS and engine sensors for accuracy")

    if engine.rpm is not None and engine.rpm > 2000 and record.gps.speed < 1:
        result.warn("engine.rpm", "High RPM with low speed may indicate slipping or implement load",
                    "Check transmission and implement operation")

    rate = record.fuel_rate
    if rate is not None and rate > 0 and not engine.is_running:
        result.warn("fuel.consumption", "Fuel consumption detected with engine off",
                    "Check fuel sensor calibration")


def validate_record(record: TelemetryRecord, now: datetime | None = None) -> ValidationResult:
    """Validate a single record. ``now`` enables the clock-skew warning."""
    result = ValidationResult()

    if not record.vehicle_id or not record.vehicle_id.strip():
        result.error("vehicle_id", "Vehicle ID is required", code="REQUIRED_FIELD")

    if record.timestamp.tzinfo is None:
        result.error("timestamp", "Timestamp must be timezone-aware", code="INVALID_TYPE")
    elif now is not None:
        skew_minutes = abs((now - record.timestamp).total_seconds()) / 60
        if skew_minutes > CLOCK_SKEW_MINUTES:
            result.warn("timestamp", "Timestamp is more than 1 hour off from current time",
                        "Check device clock synchronization")

    _check_gps(record.gps, result)
    if record.engine is not None:
        _check_engine(record.engine, result)
    if record.fuel is not None:
        _check_fuel(record.fuel, result)
    _check_cross_fields(record, result)

    score = record.quality_score
    if score is not None and _finite(result, "quality_score", score) and not 0 <= score <= 100:
        result.error("quality_score", "Quality score must be between 0 and 100", value=record.quality_score)

    return result


def ensure_valid(record: TelemetryRecord, now: datetime | None = None) -> ValidationResult:
    """Validate and raise ``InvalidInput`` on any error. Returns the warnings."""
    result = validate_record(record, now)
    if not result.is_valid:
        raise InvalidInput(result.errors, vehicle_id=record.vehicle_id)
    return result


def check_stream_order(records: Sequence[TelemetryRecord]) -> None:
    """Raise ``InvalidInput`` if timestamps ever go backwards.

    Equal consecutive timestamps are accepted.
    """
    for i in range(1, len(records)):
        prev, cur = records[i - 1], records[i]
        if cur.timestamp < prev.timestamp:
            raise InvalidInput(
                [ValidationIssue(
                    "timestamp",
                    f"Timestamps must be non-decreasing (record {i} at {cur.timestamp.isoformat()} "
                    f"precedes {prev.timestamp.isoformat()})",
                    code="NON_MONOTONIC",
                    value=cur.timestamp.isoformat(),
                )],
                vehicle_id=cur.vehicle_id,
            )
