"""Telemetry ingest API endpoints.

This is the thin FastAPI adapter. It parses HTTP requests and hands the
raw JSON records to the processor.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api/v1")


def _extract_records(body: object) -> list | None:
    """Accept ``{"records": [...]}``, a bare list, or a single record."""
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        if "records" in body:
            records = body["records"]
            return records if isinstance(records, list) else None
        return [body]
    return None


@router.post("/telemetry")
async def receive_telemetry(request: Request) -> JSONResponse:
    """Receive telemetry samples from vehicles.

    Each record is validated on its own: valid records are stored even
    when others in the same request are rejected.
    """
    from fleetpath.main import get_config, get_processor

    body_bytes = await request.body()
    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"accepted": False, "error": "invalid JSON"})

    records = _extract_records(body)
    if records is None:
        return JSONResponse(status_code=400,
                            content={"accepted": False, "error": "expected a record or a list of records"})

    limit = get_config().limits.max_records_per_request
    if len(records) > limit:
        return JSONResponse(status_code=413,
                            content={"accepted": False, "error": f"too many records, maximum is {limit}"})

    result = await get_processor().process_records(records, len(body_bytes))
    payload = result.to_dict()
    status = 200 if payload["accepted"] else 422
    return JSONResponse(status_code=status, content=payload)


@router.get("/vehicles/{vehicle_id}/state")
async def get_vehicle_state(vehicle_id: str) -> JSONResponse:
    """Running totals for a vehicle since server start."""
    from fleetpath.main import get_processor

    state = get_processor().vehicle_state(vehicle_id)
    if state is None:
        return JSONResponse(status_code=404, content={"error": f"no telemetry for vehicle {vehicle_id}"})
    return JSONResponse(content=state.to_dict())
