"""Health check and monitoring endpoints."""

from __future__ import annotations

import shutil
from pathlib import Path

from fastapi import APIRouter

from fleetpath.core.aggregation import FUEL_WEIGHT, PERIOD_KINDS, QUALITY_WEIGHT, TIME_WEIGHT
from fleetpath.core.resolution import RESOLUTION_INTERVALS
from fleetpath.core.segmenter import STOP_MAX_DISTANCE_M, STOP_MIN_SECONDS

router = APIRouter(prefix="/api/v1")


@router.get("/health")
async def health() -> dict:
    """Basic health check."""
    from fleetpath.main import get_config, get_stats

    stats = get_stats()
    config = get_config()

    storage_path = Path(config.storage.base_dir)
    try:
        disk = shutil.disk_usage(storage_path if storage_path.exists() else ".")
        disk_free_gb = round(disk.free / (1024 ** 3), 1)
        storage_writable = True
    except OSError:
        disk_free_gb = -1
        storage_writable = False

    snapshot = stats.snapshot()
    return {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": snapshot["uptime_seconds"],
        "storage_writable": storage_writable,
        "disk_free_gb": disk_free_gb,
    }


@router.get("/stats")
async def stats() -> dict:
    """Ingest and query counters plus the number of recently active vehicles.

    ``active_vehicles.total`` counts vehicles that sent telemetry within
    ``active_vehicles.window_seconds``.
    """
    from fleetpath.main import get_stats

    return get_stats().snapshot()


@router.get("/config")
async def get_client_config() -> dict:
    """Server-side limits and processing constants for dashboard clients."""
    from fleetpath.main import get_config

    config = get_config()
    return {
        "max_records_per_request": config.limits.max_records_per_request,
        "max_vehicles_per_query": config.limits.max_vehicles_per_query,
        "default_max_points": config.limits.default_max_points,
        "resolutions": RESOLUTION_INTERVALS,
        "period_kinds": list(PERIOD_KINDS),
        "stop_rule": {"min_seconds": STOP_MIN_SECONDS, "max_distance_m": STOP_MAX_DISTANCE_M},
        "efficiency_weights": {"fuel": FUEL_WEIGHT, "time": TIME_WEIGHT, "quality": QUALITY_WEIGHT},
    }
