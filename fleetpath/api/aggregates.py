"""Aggregated telemetry API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from fleetpath.core.aggregation import PERIOD_KINDS, TimePeriod
from fleetpath.core.codec import parse_timestamp
from fleetpath.core.validation import InvalidInput, ValidationIssue

router = APIRouter(prefix="/api/v1")

# Upper bound on buckets in one series request.
MAX_SERIES_BUCKETS = 400


def _period_kind(value: str) -> str:
    if value not in PERIOD_KINDS:
        raise InvalidInput([ValidationIssue("period", f"period must be one of {', '.join(PERIOD_KINDS)}",
                                            code="INVALID_VALUE", value=value)])
    return value


@router.get("/vehicles/{vehicle_id}/aggregate")
async def get_aggregate(
    vehicle_id: str,
    start: str,
    period: str = "day",
    count: int = Query(default=1, ge=1, le=366),
    fuel_price: float | None = Query(default=None, ge=0),
) -> JSONResponse:
    """Distance, fuel, engine, efficiency and utilization rollup for one period."""
    from fleetpath.main import get_service, get_stats

    time_period = TimePeriod(_period_kind(period), parse_timestamp(start, "start"), count)
    get_stats().record_aggregate_query()
    result = await get_service().aggregate(vehicle_id, time_period, fuel_price_per_liter=fuel_price)
    return JSONResponse(content=result.to_dict())


@router.get("/vehicles/{vehicle_id}/aggregates")
async def get_aggregate_series(
    vehicle_id: str,
    start: str,
    end: str,
    period: str = "hour",
    fuel_price: float | None = Query(default=None, ge=0),
) -> JSONResponse:
    """Consecutive period rollups between ``start`` and ``end``."""
    from fleetpath.main import get_service, get_stats

    kind = _period_kind(period)
    start_dt = parse_timestamp(start, "start")
    end_dt = parse_timestamp(end, "end")
    if end_dt <= start_dt:
        raise InvalidInput([ValidationIssue("end", "end must be after start", code="INVALID_RANGE", value=end)])

    buckets = 0
    p = TimePeriod(kind, start_dt)
    while p.start < end_dt:
        buckets += 1
        if buckets > MAX_SERIES_BUCKETS:
            return JSONResponse(status_code=413, content={
                "error": f"too many {kind} buckets, maximum is {MAX_SERIES_BUCKETS}",
            })
        p = p.next()

    get_stats().record_aggregate_query()
    series = await get_service().aggregate_series(
        vehicle_id, kind, start_dt, end_dt, fuel_price_per_liter=fuel_price,
    )
    return JSONResponse(content={"vehicle_id": vehicle_id, "series": [a.to_dict() for a in series]})
