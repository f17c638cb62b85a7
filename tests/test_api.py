"""Tests for the HTTP API endpoints."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest
import structlog

import fleetpath.main as main_module
from factories import BASE_TIME, make_record, payload, straight_track
from fleetpath.core.codec import record_to_dict


async def _ingest(client, records):
    resp = await client.post(
        "/api/v1/telemetry",
        content=json.dumps(payload(records)),
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _path_query(vehicle_ids, **extra):
    body = {
        "vehicle_ids": vehicle_ids,
        "start_time": BASE_TIME.isoformat(),
        "end_time": (BASE_TIME + timedelta(hours=1)).isoformat(),
        "resolution": "medium",
    }
    body.update(extra)
    return body


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_lifespan_closes_log_file(tmp_path, monkeypatch):
    log_path = tmp_path / "server.log"
    monkeypatch.setenv("FLEETPATH_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("FLEETPATH_LOG_FILE", str(log_path))
    monkeypatch.setenv("FLEETPATH_LOG_FORMAT", "json")

    handles = []
    try:
        for _ in range(2):
            async with main_module.lifespan(main_module.app):
                handles.append(main_module._log_file)
                assert not handles[-1].closed
    finally:
        structlog.reset_defaults()

    assert len(handles) == 2
    assert all(h.closed for h in handles)
    assert main_module._log_file is None
    events = [json.loads(line)["event"] for line in log_path.read_text().splitlines()]
    assert events.count("server_stopped") == 2


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "uptime_seconds" in data
    assert "disk_free_gb" in data


@pytest.mark.asyncio
async def test_stats_empty(client):
    resp = await client.get("/api/v1/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["records_stored"] == 0
    assert data["active_vehicles"]["total"] == 0


@pytest.mark.asyncio
async def test_config_endpoint(client):
    resp = await client.get("/api/v1/config")
    assert resp.status_code == 200
    data = resp.json()
    assert data["resolutions"] == {"high": 10, "medium": 60, "low": 300}
    assert data["stop_rule"] == {"min_seconds": 900, "max_distance_m": 50.0}
    assert data["efficiency_weights"] == {"fuel": 0.4, "time": 0.4, "quality": 0.2}
    assert "max_records_per_request" in data


# ---------------------------------------------------------------------------
# Telemetry ingest
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_submit_batch(client):
    data = await _ingest(client, straight_track(5))
    assert data["accepted"] is True
    assert data["stored"] == 5
    assert data["rejected"] == []

    stats = (await client.get("/api/v1/stats")).json()
    assert stats["records_stored"] == 5
    assert stats["active_vehicles"]["total"] == 1


@pytest.mark.asyncio
async def test_submit_single_record(client):
    resp = await client.post("/api/v1/telemetry", json=record_to_dict(make_record()))
    assert resp.status_code == 200
    assert resp.json()["stored"] == 1


@pytest.mark.asyncio
async def test_partial_batch_rejection(client):
    records = straight_track(3)
    records[1] = make_record(timestamp=records[1].timestamp, lat=95.0)
    resp = await client.post("/api/v1/telemetry", json=payload(records))

    assert resp.status_code == 200
    data = resp.json()
    assert data["accepted"] is True
    assert data["stored"] == 2
    assert len(data["rejected"]) == 1
    rejected = data["rejected"][0]
    assert rejected["index"] == 1
    assert rejected["vehicle_id"] == "tractor-1"
    assert rejected["errors"][0]["field"] == "gps.latitude"


@pytest.mark.asyncio
async def test_all_rejected_is_422(client):
    resp = await client.post("/api/v1/telemetry", json={"records": [{"vehicle_id": "x"}]})
    assert resp.status_code == 422
    data = resp.json()
    assert data["accepted"] is False
    assert data["rejected"][0]["errors"][0]["code"] == "REQUIRED_FIELD"


@pytest.mark.asyncio
async def test_invalid_json(client):
    resp = await client.post(
        "/api/v1/telemetry",
        content=b"not json{{{",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_records_must_be_a_list(client):
    resp = await client.post("/api/v1/telemetry", json={"records": "nope"})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_too_many_records(client):
    main_module.get_config().limits.max_records_per_request = 2
    resp = await client.post("/api/v1/telemetry", json=payload(straight_track(3)))
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_warnings_are_reported(client):
    data = await _ingest(client, [make_record(speed=130.0)])
    assert data["stored"] == 1
    fields = {w["field"] for w in data["warnings"][0]["warnings"]}
    assert "gps.speed" in fields


@pytest.mark.asyncio
async def test_non_finite_numbers_are_rejected(client):
    bad = [record_to_dict(r) for r in straight_track(5, vehicle_id="nan-1")]
    bad[2]["gps"]["speed"] = "nan"
    # Python's json module emits the bare Infinity literal.
    bad[3]["engine"] = {"is_running": True, "rpm": float("inf")}
    resp = await client.post(
        "/api/v1/telemetry",
        content=json.dumps({"records": bad}),
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["stored"] == 3
    errors = {r["index"]: r["errors"][0] for r in data["rejected"]}
    assert errors[2]["field"] == "gps.speed"
    assert errors[2]["code"] == "INVALID_TYPE"
    assert errors[3]["field"] == "engine.rpm"

    await _ingest(client, straight_track(5))
    resp = await client.post("/api/v1/paths", json=_path_query(["nan-1", "tractor-1"]))
    assert resp.status_code == 200
    vehicles = resp.json()["vehicles"]
    assert len(vehicles["tractor-1"]) == 1
    assert len(vehicles["nan-1"]) == 1


def _order_warnings(data):
    return [
        entry["index"] for entry in data["warnings"]
        if any(w["field"] == "timestamp" and "older" in w["message"] for w in entry["warnings"])
    ]


@pytest.mark.asyncio
async def test_out_of_order_records_are_reported(client):
    records = straight_track(6)
    data = await _ingest(client, [records[0], records[2], records[1], records[3]])
    assert data["stored"] == 4
    assert _order_warnings(data) == [2]

    # Older than the vehicle's last stored record.
    data = await _ingest(client, [records[5], records[4]])
    assert _order_warnings(data) == [1]

    resp = await client.post("/api/v1/paths", json=_path_query(["tractor-1"]))
    seg = resp.json()["vehicles"]["tractor-1"][0]
    assert seg["point_count"] == 6


@pytest.mark.asyncio
async def test_late_record_across_requests_is_reported(client):
    records = straight_track(3)
    await _ingest(client, records[1:])
    data = await _ingest(client, [records[0]])
    assert _order_warnings(data) == [0]


@pytest.mark.asyncio
async def test_vehicle_state(client):
    resp = await client.get("/api/v1/vehicles/tractor-1/state")
    assert resp.status_code == 404

    await _ingest(client, straight_track(31))
    resp = await client.get("/api/v1/vehicles/tractor-1/state")
    assert resp.status_code == 200
    data = resp.json()
    assert data["records_seen"] == 31
    assert data["driving_minutes"] == 30.0


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_paths(client):
    await _ingest(client, straight_track(31))

    resp = await client.post("/api/v1/paths", json=_path_query(["tractor-1", "ghost"]))
    assert resp.status_code == 200
    data = resp.json()

    assert data["interval_seconds"] == 60
    assert data["missing"] == []
    assert data["vehicles"]["ghost"] == []

    segments = data["vehicles"]["tractor-1"]
    assert len(segments) == 1
    seg = segments[0]
    assert seg["type"] == "transport"
    assert seg["duration_s"] == 1800
    assert seg["distance_m"] == pytest.approx(5000, abs=0.5)
    assert seg["point_count"] == 31
    assert len(seg["points"]) == 31


@pytest.mark.asyncio
async def test_paths_low_resolution_thins_points(client):
    await _ingest(client, straight_track(31))
    resp = await client.post("/api/v1/paths", json=_path_query(["tractor-1"], resolution="low"))
    seg = resp.json()["vehicles"]["tractor-1"][0]
    # Every 5 minutes over 30 minutes.
    assert seg["point_count"] == 7


@pytest.mark.asyncio
async def test_paths_max_points(client):
    await _ingest(client, straight_track(31))
    resp = await client.post("/api/v1/paths", json=_path_query(["tractor-1"], max_points=10))
    seg = resp.json()["vehicles"]["tractor-1"][0]
    assert seg["point_count"] == 31
    assert len(seg["points"]) <= 10
    assert seg["points"][-1]["timestamp"] == (BASE_TIME + timedelta(minutes=30)).isoformat()


@pytest.mark.asyncio
async def test_paths_unknown_resolution(client):
    resp = await client.post("/api/v1/paths", json=_path_query(["tractor-1"], resolution="ultra"))
    assert resp.status_code == 422
    assert resp.json()["errors"][0]["code"] == "INVALID_VALUE"


@pytest.mark.asyncio
@pytest.mark.parametrize("resolution", [["high"], {}, 60])
async def test_paths_non_string_resolution(client, resolution):
    resp = await client.post("/api/v1/paths", json=_path_query(["tractor-1"], resolution=resolution))
    assert resp.status_code == 422
    assert resp.json()["errors"][0]["field"] == "resolution"


@pytest.mark.asyncio
async def test_paths_reversed_range(client):
    body = _path_query(["tractor-1"])
    body["start_time"], body["end_time"] = body["end_time"], body["start_time"]
    resp = await client.post("/api/v1/paths", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_paths_too_many_vehicles(client):
    main_module.get_config().limits.max_vehicles_per_query = 2
    resp = await client.post("/api/v1/paths", json=_path_query(["a", "b", "c"]))
    assert resp.status_code == 413


@pytest.mark.asyncio
async def test_presets(client):
    resp = await client.get("/api/v1/paths/presets")
    assert resp.status_code == 200
    labels = [p["label"] for p in resp.json()["presets"]]
    assert labels == ["Last Hour", "Today", "Yesterday", "Last 7 Days", "Last 30 Days"]


@pytest.mark.asyncio
async def test_optimize(client):
    resp = await client.post("/api/v1/paths/optimize", json={"points": list(range(100)), "max_points": 10})
    assert resp.status_code == 200
    data = resp.json()
    assert data["original_count"] == 100
    assert len(data["points"]) <= 10
    assert data["points"][-1] == 99


@pytest.mark.asyncio
async def test_optimize_rejects_bad_budget(client):
    resp = await client.post("/api/v1/paths/optimize", json={"points": [1, 2, 3], "max_points": 0})
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_aggregate(client):
    await _ingest(client, straight_track(31, working=True, width=6.0))

    resp = await client.get(
        "/api/v1/vehicles/tractor-1/aggregate",
        params={"start": "2024-05-06T00:00:00+00:00", "period": "day", "fuel_price": 1.5},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["record_count"] == 31
    assert data["segment_count"] == 1
    assert data["period"]["label"] == "2024-05-06"
    assert data["metrics"]["distance"]["total"] == pytest.approx(5.0, abs=1e-3)
    assert data["metrics"]["utilization"]["working_time"] == pytest.approx(0.5)

    stats = (await client.get("/api/v1/stats")).json()
    assert stats["aggregate_queries"] == 1


@pytest.mark.asyncio
async def test_aggregate_unknown_vehicle_is_empty(client):
    resp = await client.get(
        "/api/v1/vehicles/ghost/aggregate",
        params={"start": "2024-05-06T00:00:00+00:00"},
    )
    assert resp.status_code == 200
    assert resp.json()["record_count"] == 0


@pytest.mark.asyncio
async def test_aggregate_invalid_period(client):
    resp = await client.get(
        "/api/v1/vehicles/tractor-1/aggregate",
        params={"start": "2024-05-06T00:00:00+00:00", "period": "fortnight"},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_aggregate_series(client):
    await _ingest(client, straight_track(31))
    resp = await client.get(
        "/api/v1/vehicles/tractor-1/aggregates",
        params={
            "start": "2024-05-06T07:00:00+00:00",
            "end": "2024-05-06T10:00:00+00:00",
            "period": "hour",
        },
    )
    assert resp.status_code == 200
    series = resp.json()["series"]
    assert [s["record_count"] for s in series] == [0, 31, 0]


@pytest.mark.asyncio
async def test_aggregate_series_bucket_limit(client):
    resp = await client.get(
        "/api/v1/vehicles/tractor-1/aggregates",
        params={
            "start": "2024-01-01T00:00:00+00:00",
            "end": "2024-03-01T00:00:00+00:00",
            "period": "hour",
        },
    )
    assert resp.status_code == 413
