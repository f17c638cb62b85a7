"""Answers path and aggregate queries over stored telemetry.

Each vehicle is an independent unit of work: read its records, thin them
to the query resolution, validate/normalize and segment. Units share no
state, so the batch fans out one asyncio task per vehicle and the CPU
part runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any, Sequence

import structlog

from fleetpath.core.aggregation import (
    AggregatedTelemetry,
    PeriodKind,
    TimePeriod,
    aggregate,
    aggregate_series,
)
from fleetpath.core.normalizer import telemetry_to_path_points
from fleetpath.core.resolution import interval_for, sample_records
from fleetpath.core.segmenter import segment_path
from fleetpath.core.validation import InvalidInput

if TYPE_CHECKING:
    from fleetpath.core.models import PathQuery, PathSegment, TelemetryRecord
    from fleetpath.storage.base import TelemetryStorage

log = structlog.get_logger()


def vehicle_paths(records: Sequence[TelemetryRecord], resolution: str = "medium") -> list[PathSegment]:
    """Single-vehicle pipeline: sample, normalize, segment.

    Raises:
        InvalidInput: the stream fails validation.
    """
    sampled = sample_records(records, interval_for(resolution))
    points = telemetry_to_path_points(sampled)
    return segment_path(points)


class PathTrackingService:
    """Query entry point over a TelemetryStorage."""

    def __init__(self, storage: TelemetryStorage) -> None:
        self._storage = storage

    async def _paths_for_vehicle(self, vehicle_id: str, query: PathQuery) -> list[PathSegment]:
        records = await self._storage.read_range(vehicle_id, query.start_time, query.end_time)
        if len(records) < 2:
            return []
        try:
            return await asyncio.to_thread(vehicle_paths, records, query.resolution)
        except InvalidInput as exc:
            log.error("vehicle_paths_rejected", vehicle=vehicle_id, error=str(exc))
            return []

    async def get_vehicle_paths(
        self,
        query: PathQuery,
        timeout: float | None = None,
    ) -> dict[str, list[PathSegment]]:
        """Segments per requested vehicle.

        Vehicles without data (or with a stream that fails validation) map
        to ``[]``. With a ``timeout``, vehicles still running when it
        expires are cancelled and left out of the result.
        """
        interval_for(query.resolution)  # reject unknown resolutions up front
        if not query.vehicle_ids:
            return {}

        tasks = {
            vid: asyncio.create_task(self._paths_for_vehicle(vid, query))
            for vid in sorted(query.vehicle_ids)
        }
        done, pending = await asyncio.wait(tasks.values(), timeout=timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            log.warning("vehicle_paths_timeout",
                        timed_out=[vid for vid, t in tasks.items() if t in pending],
                        timeout=timeout)

        result = {vid: task.result() for vid, task in tasks.items() if task in done}
        log.info("vehicle_paths_served",
                 vehicles=len(result),
                 segments=sum(len(s) for s in result.values()),
                 resolution=query.resolution)
        return result

    async def aggregate(
        self,
        vehicle_id: str,
        period: TimePeriod,
        **kwargs: Any,
    ) -> AggregatedTelemetry:
        """Aggregate a vehicle's stored records over ``period``.

        Raises:
            InvalidInput: the stored stream fails validation.
        """
        records = await self._storage.read_range(vehicle_id, period.start, period.end)
        telemetry_to_path_points(records)
        return await asyncio.to_thread(aggregate, vehicle_id, period, records, **kwargs)

    async def aggregate_series(
        self,
        vehicle_id: str,
        kind: PeriodKind,
        start: datetime,
        end: datetime,
        **kwargs: Any,
    ) -> list[AggregatedTelemetry]:
        """One aggregate per ``kind`` bucket between ``start`` and ``end``."""
        periods = []
        period = TimePeriod(kind, start)
        while period.start < end:
            periods.append(period)
            period = period.next()
        if not periods:
            return []

        records = await self._storage.read_range(vehicle_id, periods[0].start, periods[-1].end)
        telemetry_to_path_points(records)
        return await asyncio.to_thread(aggregate_series, vehicle_id, kind, start, end, records, **kwargs)
