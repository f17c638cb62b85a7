"""Vehicle path API endpoints."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fleetpath.core.codec import parse_timestamp
from fleetpath.core.models import PathQuery
from fleetpath.core.optimizer import optimize_path_for_display
from fleetpath.core.resolution import interval_for, time_range_presets
from fleetpath.core.validation import InvalidInput, ValidationIssue

router = APIRouter(prefix="/api/v1")


def _parse_query(body: dict) -> PathQuery:
    vehicle_ids = body.get("vehicle_ids")
    if not isinstance(vehicle_ids, list) or not all(isinstance(v, str) for v in vehicle_ids):
        raise InvalidInput([ValidationIssue("vehicle_ids", "vehicle_ids must be a list of strings",
                                            code="INVALID_TYPE")])
    start = parse_timestamp(body.get("start_time"), "start_time")
    end = parse_timestamp(body.get("end_time"), "end_time")
    if end <= start:
        raise InvalidInput([ValidationIssue("end_time", "end_time must be after start_time",
                                            code="INVALID_RANGE", value=body.get("end_time"))])
    resolution = body.get("resolution", "medium")
    interval_for(resolution)
    return PathQuery(
        vehicle_ids=frozenset(vehicle_ids),
        start_time=start,
        end_time=end,
        resolution=resolution,
    )


async def _json_body(request: Request) -> dict | None:
    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


@router.post("/paths")
async def get_paths(request: Request) -> JSONResponse:
    """Classified path segments per vehicle.

    Body: {"vehicle_ids": [...], "start_time": ..., "end_time": ...,
    "resolution": "high"|"medium"|"low", "max_points": n (optional)}.
    Vehicles without data come back with an empty list.
    """
    from fleetpath.main import get_config, get_service, get_stats

    body = await _json_body(request)
    if body is None:
        return JSONResponse(status_code=400, content={"error": "invalid JSON"})

    query = _parse_query(body)
    limits = get_config().limits
    if len(query.vehicle_ids) > limits.max_vehicles_per_query:
        return JSONResponse(status_code=413, content={
            "error": f"too many vehicles, maximum is {limits.max_vehicles_per_query}",
        })

    max_points = body.get("max_points")
    if max_points is not None and (not isinstance(max_points, int) or max_points < 1):
        raise InvalidInput([ValidationIssue("max_points", "max_points must be a positive integer",
                                            code="INVALID_RANGE", value=max_points)])

    get_stats().record_path_query()
    paths = await get_service().get_vehicle_paths(query, timeout=limits.query_timeout_seconds)

    vehicles = {}
    for vehicle_id, segments in paths.items():
        vehicles[vehicle_id] = [
            seg.to_dict(optimize_path_for_display(seg.points, max_points) if max_points else None)
            for seg in segments
        ]
    return JSONResponse(content={
        "resolution": query.resolution,
        "interval_seconds": interval_for(query.resolution),
        "vehicles": vehicles,
        "missing": sorted(query.vehicle_ids - paths.keys()),
    })


@router.post("/paths/optimize")
async def optimize_points(request: Request) -> JSONResponse:
    """Decimate an arbitrary point list for display.

    Body: {"points": [...], "max_points": n}.
    """
    from fleetpath.main import get_config

    body = await _json_body(request)
    if body is None or not isinstance(body.get("points"), list):
        return JSONResponse(status_code=400, content={"error": "expected {\"points\": [...]}"})

    max_points = body.get("max_points", get_config().limits.default_max_points)
    if not isinstance(max_points, int) or max_points < 1:
        raise InvalidInput([ValidationIssue("max_points", "max_points must be a positive integer",
                                            code="INVALID_RANGE", value=max_points)])

    points = optimize_path_for_display(body["points"], max_points)
    return JSONResponse(content={"points": points, "original_count": len(body["points"])})


@router.get("/paths/presets")
async def get_presets() -> dict:
    """Time range presets for the path view, relative to now (UTC)."""
    now = datetime.now(timezone.utc)
    return {"presets": [p.to_dict() for p in time_range_presets(now)]}
