"""Path segmenter — splits one vehicle's point stream into classified segments.

The scan is a small state machine. Its only state is the span being
accumulated; between every pair of consecutive points three checks decide
whether the span closes:

- stop: a long dwell (more than STOP_MIN_SECONDS within STOP_MAX_DISTANCE_M)
- activity change: the implement switches on/off or the task changes
- end of stream

A closed span becomes a PathSegment only if it holds at least two points.
Segments never share points. Input is assumed validated and time-ordered.
"""

from __future__ import annotations

from typing import Literal, Sequence

from fleetpath.core.geo import distance, path_distance
from fleetpath.core.models import PathPoint, PathSegment, SegmentType

# A dwell must last longer than this...
STOP_MIN_SECONDS = 15 * 60
# ...while staying within this distance of where it began.
STOP_MAX_DISTANCE_M = 50.0

# Classification thresholds (fraction of points).
WORKING_RATIO = 0.8
TRANSPORT_RATIO = 0.8
IDLE_RATIO = 0.2

BoundaryReason = Literal["stop", "activity_change", "end_of_stream"]


def _elapsed_s(a: PathPoint, b: PathPoint) -> float:
    return (b.timestamp - a.timestamp).total_seconds()


def is_long_stop(prev: PathPoint, cur: PathPoint) -> bool:
    """More than 15 minutes between two samples that are less than 50 m apart."""
    return _elapsed_s(prev, cur) > STOP_MIN_SECONDS and distance(prev, cur) < STOP_MAX_DISTANCE_M


def is_activity_change(prev: PathPoint, cur: PathPoint) -> bool:
    """Implement switched on/off, or the task changed."""
    return prev.is_working != cur.is_working or prev.metadata.task_id != cur.metadata.task_id


def find_dwells(points: Sequence[PathPoint]) -> list[tuple[int, int]]:
    """Inclusive index ranges of stationary runs that qualify as a stop.

    A run starts at a stationary point (the anchor) and extends while the
    next point is also stationary and within STOP_MAX_DISTANCE_M of the
    anchor. It qualifies when it spans more than STOP_MIN_SECONDS.
    """
    dwells: list[tuple[int, int]] = []
    n = len(points)
    i = 0
    while i < n:
        if points[i].is_moving:
            i += 1
            continue
        anchor = points[i]
        j = i
        while (
            j + 1 < n
            and not points[j + 1].is_moving
            and distance(anchor, points[j + 1]) < STOP_MAX_DISTANCE_M
        ):
            j += 1
        if j > i and _elapsed_s(points[i], points[j]) > STOP_MIN_SECONDS:
            dwells.append((i, j))
        i = j + 1
    return dwells


def classify(points: Sequence[PathPoint]) -> SegmentType:
    """Segment type from working/moving point ratios. First match wins."""
    if not points:
        return "unknown"
    total = len(points)
    working_ratio = sum(1 for p in points if p.is_working) / total
    moving_ratio = sum(1 for p in points if p.is_moving) / total

    if working_ratio > WORKING_RATIO:
        return "working"
    if moving_ratio > TRANSPORT_RATIO:
        return "transport"
    if moving_ratio < IDLE_RATIO:
        return "idle"
    return "unknown"


def create_segment(points: Sequence[PathPoint]) -> PathSegment:
    """Build a segment from two or more ordered points."""
    if len(points) < 2:
        raise ValueError(f"a segment needs at least 2 points, got {len(points)}")

    first, last = points[0], points[-1]
    dist = path_distance(points)
    duration = _elapsed_s(first, last)
    average_speed = (dist / 1000) / (duration / 3600) if duration > 0 else 0.0

    return PathSegment(
        id=f"segment_{first.vehicle_id}_{int(first.timestamp.timestamp() * 1000)}",
        vehicle_id=first.vehicle_id,
        start_time=first.timestamp,
        end_time=last.timestamp,
        points=tuple(points),
        distance=dist,
        duration=duration,
        average_speed=average_speed,
        max_speed=max(p.speed for p in points),
        type=classify(points),
    )


class PathSegmenter:
    """Single-use scanner over one vehicle's ordered points."""

    def __init__(self, points: Sequence[PathPoint]) -> None:
        self._points = list(points)
        self._dwell_starts: set[int] = set()
        self._dwell_ends: set[int] = set()
        self._dwell_of: dict[int, int] = {}
        for k, (start, end) in enumerate(find_dwells(self._points)):
            self._dwell_starts.add(start)
            self._dwell_ends.add(end)
            for idx in range(start, end + 1):
                self._dwell_of[idx] = k

        # State: index where the span being accumulated began.
        self._span_start = 0
        self._closed: list[tuple[int, int, BoundaryReason]] = []

    def boundary_reason(self, i: int) -> BoundaryReason | None:
        """Reason for a boundary between point ``i - 1`` and point ``i``."""
        prev, cur = self._points[i - 1], self._points[i]

        if i in self._dwell_starts or (i - 1) in self._dwell_ends:
            return "stop"
        same_dwell = i in self._dwell_of and self._dwell_of.get(i - 1) == self._dwell_of[i]
        if not same_dwell and is_long_stop(prev, cur):
            return "stop"
        if is_activity_change(prev, cur):
            return "activity_change"
        return None

    def spans(self) -> list[tuple[int, int, BoundaryReason]]:
        """Inclusive ``(first, last, reason)`` index spans covering the input."""
        if self._closed or not self._points:
            return list(self._closed)

        for i in range(1, len(self._points)):
            reason = self.boundary_reason(i)
            if reason is not None:
                self._closed.append((self._span_start, i - 1, reason))
                self._span_start = i
        self._closed.append((self._span_start, len(self._points) - 1, "end_of_stream"))
        return list(self._closed)

    def segments(self) -> list[PathSegment]:
        return [
            create_segment(self._points[first:last + 1])
            for first, last, _ in self.spans()
            if last > first
        ]


def segment_path(points: Sequence[PathPoint]) -> list[PathSegment]:
    """Partition an ordered point stream into disjoint classified segments."""
    if len(points) < 2:
        return []
    return PathSegmenter(points).segments()
