"""Tests for JSON <-> record conversion."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from factories import BASE_TIME, make_record
from fleetpath.core.codec import parse_timestamp, record_from_dict, record_to_dict
from fleetpath.core.models import EngineData, FuelData, TelemetryEvent
from fleetpath.core.validation import InvalidInput


def test_parse_timestamp_forms():
    ms = int(BASE_TIME.timestamp() * 1000)
    assert parse_timestamp(ms) == BASE_TIME
    assert parse_timestamp("2024-05-06T08:00:00Z") == BASE_TIME
    assert parse_timestamp("2024-05-06T10:00:00+02:00") == BASE_TIME
    # Naive values are taken as UTC.
    assert parse_timestamp("2024-05-06T08:00:00") == BASE_TIME
    assert parse_timestamp(datetime(2024, 5, 6, 8, 0)) == BASE_TIME


def test_parse_timestamp_normalizes_to_utc():
    tz = timezone(timedelta(hours=3))
    parsed = parse_timestamp(datetime(2024, 5, 6, 11, 0, tzinfo=tz))
    assert parsed.tzinfo == timezone.utc
    assert parsed == BASE_TIME


@pytest.mark.parametrize("value", [None, "yesterday", True, [1, 2], float("inf"), float("nan"), 1e30])
def test_parse_timestamp_rejects_garbage(value):
    with pytest.raises(InvalidInput) as exc_info:
        parse_timestamp(value)
    assert exc_info.value.issues[0].code == "INVALID_TYPE"


def test_minimal_record():
    record = record_from_dict({
        "vehicle_id": "tractor-1",
        "timestamp": "2024-05-06T08:00:00Z",
        "gps": {"latitude": 50.45, "longitude": 30.52},
    })
    assert record.vehicle_id == "tractor-1"
    assert record.gps.speed == 0.0
    assert record.engine is None
    assert record.implement is None
    assert record.events == ()


def test_full_record_survives_serialization():
    record = make_record(
        working=True,
        width=6.0,
        task_id="task-1",
        engine=EngineData(is_running=True, rpm=1800, coolant_temperature=88, fuel_rate=14.5),
        fuel=FuelData(level=210.0, percentage=70.0),
        events=(TelemetryEvent("low_fuel", BASE_TIME, "warning", "Fuel below 20%"),),
        quality=92.0,
        field_id="field-3",
    )
    assert record_from_dict(record_to_dict(record)) == record


def test_optional_sections_omitted():
    data = record_to_dict(make_record())
    assert "engine" not in data
    assert "fuel" not in data
    assert "implement" not in data


def test_missing_gps_is_required_field():
    with pytest.raises(InvalidInput) as exc_info:
        record_from_dict({"vehicle_id": "tractor-1", "timestamp": 0})
    err = exc_info.value
    assert err.vehicle_id == "tractor-1"
    assert err.issues[0].code == "REQUIRED_FIELD"
    assert err.issues[0].field == "gps"


def test_malformed_coordinates():
    with pytest.raises(InvalidInput) as exc_info:
        record_from_dict({
            "vehicle_id": "tractor-1",
            "timestamp": 0,
            "gps": {"latitude": "north", "longitude": 30.0},
        })
    assert exc_info.value.issues[0].code == "INVALID_TYPE"


def test_bad_timestamp_keeps_its_issue():
    with pytest.raises(InvalidInput) as exc_info:
        record_from_dict({"vehicle_id": "tractor-1", "timestamp": "soon", "gps": {}})
    assert exc_info.value.issues[0].field == "timestamp"
