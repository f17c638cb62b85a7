"""Rolls a vehicle's records and segments into period metrics.

Everything here is a pure function of its arguments. Records are taken
as validated and ordered by time (the normalizer's job); records of other
vehicles or outside the period are ignored.

Per-interval accounting: an "interval" is a pair of consecutive records.
Its time, distance and fuel are attributed to the state of the earlier
record (its speed, implement, engine and load).
"""

from __future__ import annotations

from calendar import monthrange
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Literal, Sequence

from fleetpath.core.geo import area_covered, center_of, distance, haversine_m, path_distance, point_in_polygon
from fleetpath.core.models import SEVERITIES, Location, PathPoint, PathSegment, TelemetryEvent, TelemetryRecord
from fleetpath.core.normalizer import record_to_point
from fleetpath.core.segmenter import segment_path

PeriodKind = Literal["hour", "day", "week", "month", "year"]
PERIOD_KINDS: tuple[str, ...] = ("hour", "day", "week", "month", "year")

Trend = Literal["increasing", "decreasing", "stable"]

# Composite efficiency score weights.
FUEL_WEIGHT = 0.4
TIME_WEIGHT = 0.4
QUALITY_WEIGHT = 0.2

# km/h, upper bound exclusive; None means open-ended.
SPEED_BUCKETS: tuple[tuple[float, float | None], ...] = (
    (0, 1), (1, 5), (5, 10), (10, 20), (20, 40), (40, None),
)
# Engine load %, upper bound exclusive except for the last bucket.
LOAD_BUCKETS: tuple[tuple[float, float], ...] = (
    (0, 20), (20, 40), (40, 60), (60, 80), (80, 100),
)

REFUEL_MIN_LITERS = 5.0
OVERHEAT_C = 110.0
IDLE_SPEED_KMH = 1.0

_SEVERITY_RANK = {s: i for i, s in enumerate(SEVERITIES)}
_URGENCY = {"warning": "medium", "error": "high", "critical": "critical"}

# event type -> (impact category, recommended action)
ALERT_IMPACTS: dict[str, tuple[str, str]] = {
    "speed_limit_exceeded": ("safety", "Review driving behaviour with the operator"),
    "accident_detected": ("safety", "Contact the operator and dispatch assistance"),
    "emergency_button": ("safety", "Contact the operator immediately"),
    "geofence_exit": ("compliance", "Confirm the vehicle is on an authorized route"),
    "unauthorized_use": ("compliance", "Verify who is operating the vehicle"),
    "fuel_theft_detected": ("cost", "Inspect the tank and review refuel records"),
    "low_fuel_warning": ("efficiency", "Schedule refueling"),
    "battery_low": ("efficiency", "Check the battery and charging system"),
    "maintenance_due": ("cost", "Schedule maintenance"),
    "implement_malfunction": ("efficiency", "Inspect the implement"),
    "gps_signal_lost": ("efficiency", "Check the GPS antenna"),
    "sensor_offline": ("efficiency", "Check sensor wiring and power"),
}


# ---------------------------------------------------------------------------
# Period
# ---------------------------------------------------------------------------


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class TimePeriod:
    """``count`` consecutive ``kind`` units starting at ``start``."""

    kind: PeriodKind
    start: datetime
    count: int = 1

    def __post_init__(self) -> None:
        if self.kind not in PERIOD_KINDS:
            raise ValueError(f"period kind must be one of {PERIOD_KINDS}, got {self.kind!r}")
        if self.count < 1:
            raise ValueError(f"period count must be >= 1, got {self.count}")

    @property
    def end(self) -> datetime:
        if self.kind == "hour":
            return self.start + timedelta(hours=self.count)
        if self.kind == "day":
            return self.start + timedelta(days=self.count)
        if self.kind == "week":
            return self.start + timedelta(weeks=self.count)
        if self.kind == "month":
            return _add_months(self.start, self.count)
        return _add_months(self.start, 12 * self.count)

    @property
    def label(self) -> str:
        s = self.start
        if self.kind == "hour":
            base = s.strftime("%Y-%m-%d %H:00")
        elif self.kind == "day":
            base = s.strftime("%Y-%m-%d")
        elif self.kind == "week":
            iso = s.isocalendar()
            base = f"{iso[0]}-W{iso[1]:02d}"
        elif self.kind == "month":
            base = s.strftime("%Y-%m")
        else:
            base = s.strftime("%Y")
        return base if self.count == 1 else f"{base} (+{self.count} {self.kind}s)"

    @property
    def duration_hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= timestamp < self.end

    def next(self) -> TimePeriod:
        return TimePeriod(self.kind, self.end, self.count)

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "value": self.count,
            "label": self.label,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpeedBucket:
    min_speed: float
    max_speed: float | None
    duration: float  # minutes
    distance: float  # km
    percentage: float  # of total time


@dataclass(frozen=True)
class DistanceMetrics:
    total: float  # km
    working: float
    transport: float
    average_speed: float  # km/h
    max_speed: float
    speed_distribution: tuple[SpeedBucket, ...]
    work_area: float = 0.0  # hectares


@dataclass(frozen=True)
class FuelMetrics:
    total_consumed: float  # liters
    average_consumption: float  # l/h of engine runtime
    efficiency: float  # l/km
    idle_fuel_waste: float  # liters
    refuel_events: int
    fuel_cost: float | None = None


@dataclass(frozen=True)
class LoadBucket:
    min_load: float
    max_load: float
    duration: float  # minutes
    percentage: float


@dataclass(frozen=True)
class TemperatureStats:
    average: float | None
    min: float | None
    max: float | None
    overheating_events: int


@dataclass(frozen=True)
class EngineMetrics:
    total_runtime: float  # hours
    average_rpm: float
    max_rpm: float
    load_distribution: tuple[LoadBucket, ...]
    temperature_stats: TemperatureStats
    maintenance_alerts: int


@dataclass(frozen=True)
class EfficiencyMetrics:
    productivity_score: float  # 0-100
    fuel_efficiency_score: float
    work_quality_score: float
    overall_score: float


@dataclass(frozen=True)
class UtilizationMetrics:
    working_time: float  # hours
    idle_time: float
    transport_time: float
    maintenance_time: float
    utilization_rate: float  # percent
    availability_rate: float


@dataclass(frozen=True)
class LocationMetrics:
    fields_visited: tuple[str, ...]
    geofence_violations: int
    center_point: Location | None
    working_radius: float  # km
    route_efficiency: float  # percent


@dataclass(frozen=True)
class AggregatedMetrics:
    distance: DistanceMetrics
    fuel: FuelMetrics
    engine: EngineMetrics
    efficiency: EfficiencyMetrics
    utilization: UtilizationMetrics
    location: LocationMetrics


@dataclass(frozen=True)
class EventTypeSummary:
    type: str
    count: int
    severity: str
    first_occurrence: datetime
    last_occurrence: datetime
    trend: Trend


@dataclass(frozen=True)
class EventSummary:
    total_events: int
    events_by_type: tuple[EventTypeSummary, ...]
    severity_distribution: dict[str, int]
    acknowledged_count: int
    unresolved_count: int


@dataclass(frozen=True)
class AlertImpact:
    category: str
    urgency: str
    recommended_action: str = ""


@dataclass(frozen=True)
class AlertSummary:
    id: str
    type: str
    message: str
    severity: str
    first_triggered: datetime
    last_triggered: datetime
    occurrence_count: int
    status: str  # "active" or "acknowledged"
    impact: AlertImpact
    trend: Trend


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, float):
        return round(value, 4)
    return value


@dataclass(frozen=True)
class AggregatedTelemetry:
    vehicle_id: str
    period: TimePeriod
    start_time: datetime
    end_time: datetime
    record_count: int
    metrics: AggregatedMetrics
    events: EventSummary
    alerts: tuple[AlertSummary, ...] = ()
    segments: tuple[PathSegment, ...] = field(default=(), repr=False)

    def alerts_by_severity(self) -> dict[str, list[AlertSummary]]:
        """Alerts grouped by severity, most severe first."""
        grouped: dict[str, list[AlertSummary]] = {}
        for alert in self.alerts:
            grouped.setdefault(alert.severity, []).append(alert)
        return dict(sorted(grouped.items(), key=lambda kv: -_SEVERITY_RANK[kv[0]]))

    def to_dict(self) -> dict:
        return {
            "vehicle_id": self.vehicle_id,
            "period": self.period.to_dict(),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "record_count": self.record_count,
            "segment_count": len(self.segments),
            "metrics": _jsonable(asdict(self.metrics)),
            "events": _jsonable(asdict(self.events)),
            "alerts": [_jsonable(asdict(a)) for a in self.alerts],
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def efficiency_score(fuel_score: float, time_score: float, quality_score: float) -> float:
    """Weighted composite: fuel 40%, time 40%, quality 20%."""
    return fuel_score * FUEL_WEIGHT + time_score * TIME_WEIGHT + quality_score * QUALITY_WEIGHT


def trend_between(timestamps: Iterable[datetime], start: datetime, end: datetime) -> Trend:
    """Compare counts in the first and second halves of ``[start, end)``."""
    mid = start + (end - start) / 2
    earlier = later = 0
    for ts in timestamps:
        if start <= ts < mid:
            earlier += 1
        elif mid <= ts < end:
            later += 1
    if later > earlier:
        return "increasing"
    if later < earlier:
        return "decreasing"
    return "stable"


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def _interval_fuel(prev: TelemetryRecord, cur: TelemetryRecord, dt_h: float) -> tuple[float, bool]:
    """Fuel used over one interval and whether the interval was a refuel."""
    prev_level = prev.fuel.level if prev.fuel is not None else None
    cur_level = cur.fuel.level if cur.fuel is not None else None
    if prev_level is not None and cur_level is not None:
        return max(0.0, prev_level - cur_level), cur_level - prev_level >= REFUEL_MIN_LITERS
    rate = prev.fuel_rate
    if rate is not None:
        return rate * dt_h, False
    return 0.0, False


def _speed_bucket_index(speed: float) -> int:
    for i, (lo, hi) in enumerate(SPEED_BUCKETS):
        if speed >= lo and (hi is None or speed < hi):
            return i
    return 0


def _load_bucket_index(load: float) -> int:
    for i, (lo, hi) in enumerate(LOAD_BUCKETS):
        if lo <= load < hi:
            return i
    return len(LOAD_BUCKETS) - 1


def _merged_overlap_hours(windows: Sequence[tuple[datetime, datetime]], start: datetime, end: datetime) -> float:
    clipped = sorted(
        (max(ws, start), min(we, end))
        for ws, we in windows
        if we > start and ws < end
    )
    total = 0.0
    current: tuple[datetime, datetime] | None = None
    for ws, we in clipped:
        if current is None or ws > current[1]:
            if current is not None:
                total += (current[1] - current[0]).total_seconds()
            current = (ws, we)
        else:
            current = (current[0], max(current[1], we))
    if current is not None:
        total += (current[1] - current[0]).total_seconds()
    return total / 3600


# ---------------------------------------------------------------------------
# Metric groups
# ---------------------------------------------------------------------------


def _distance_and_fuel(
    records: Sequence[TelemetryRecord],
    points: Sequence[PathPoint],
    fuel_price_per_liter: float | None,
) -> tuple[DistanceMetrics, FuelMetrics, float, list[float]]:
    total_km = working_km = 0.0
    speed_minutes = [0.0] * len(SPEED_BUCKETS)
    speed_km = [0.0] * len(SPEED_BUCKETS)
    fuel_total = idle_waste = runtime_h = 0.0
    refuels = 0
    load_minutes = [0.0] * len(LOAD_BUCKETS)

    for prev, cur in zip(records, records[1:]):
        dt_s = (cur.timestamp - prev.timestamp).total_seconds()
        dt_h = dt_s / 3600
        km = haversine_m(prev.gps.latitude, prev.gps.longitude, cur.gps.latitude, cur.gps.longitude) / 1000

        total_km += km
        if prev.is_working:
            working_km += km
        bucket = _speed_bucket_index(prev.gps.speed)
        speed_minutes[bucket] += dt_s / 60
        speed_km[bucket] += km

        used, refuel = _interval_fuel(prev, cur, dt_h)
        fuel_total += used
        refuels += int(refuel)
        if prev.engine_running:
            runtime_h += dt_h
            if prev.gps.speed <= IDLE_SPEED_KMH:
                idle_waste += used
            if prev.engine is not None and prev.engine.load_percentage is not None:
                load_minutes[_load_bucket_index(prev.engine.load_percentage)] += dt_s / 60

    total_minutes = sum(speed_minutes)
    elapsed_h = (records[-1].timestamp - records[0].timestamp).total_seconds() / 3600 if records else 0.0

    widths = [r.implement.width for r in records if r.is_working and r.implement.width]
    work_area = area_covered(points, max(widths)) if widths else 0.0

    distance_metrics = DistanceMetrics(
        total=total_km,
        working=working_km,
        transport=total_km - working_km,
        average_speed=total_km / elapsed_h if elapsed_h > 0 else 0.0,
        max_speed=max((r.gps.speed for r in records), default=0.0),
        speed_distribution=tuple(
            SpeedBucket(lo, hi, speed_minutes[i], speed_km[i], _pct(speed_minutes[i], total_minutes))
            for i, (lo, hi) in enumerate(SPEED_BUCKETS)
        ),
        work_area=work_area,
    )
    fuel_metrics = FuelMetrics(
        total_consumed=fuel_total,
        average_consumption=fuel_total / runtime_h if runtime_h > 0 else 0.0,
        efficiency=fuel_total / total_km if total_km > 0 else 0.0,
        idle_fuel_waste=idle_waste,
        refuel_events=refuels,
        fuel_cost=fuel_total * fuel_price_per_liter if fuel_price_per_liter is not None else None,
    )
    return distance_metrics, fuel_metrics, runtime_h, load_minutes


def _engine(
    records: Sequence[TelemetryRecord],
    runtime_h: float,
    load_minutes: list[float],
    events: Sequence[TelemetryEvent],
) -> EngineMetrics:
    rpms = [r.engine.rpm for r in records if r.engine_running and r.engine.rpm is not None]
    temps = [r.engine.coolant_temperature for r in records
             if r.engine is not None and r.engine.coolant_temperature is not None]

    overheating = 0
    hot = False
    for t in temps:
        if t > OVERHEAT_C and not hot:
            overheating += 1
        hot = t > OVERHEAT_C

    loaded_minutes = sum(load_minutes)
    return EngineMetrics(
        total_runtime=runtime_h,
        average_rpm=sum(rpms) / len(rpms) if rpms else 0.0,
        max_rpm=max(rpms, default=0.0),
        load_distribution=tuple(
            LoadBucket(lo, hi, load_minutes[i], _pct(load_minutes[i], loaded_minutes))
            for i, (lo, hi) in enumerate(LOAD_BUCKETS)
        ),
        temperature_stats=TemperatureStats(
            average=sum(temps) / len(temps) if temps else None,
            min=min(temps) if temps else None,
            max=max(temps) if temps else None,
            overheating_events=overheating,
        ),
        maintenance_alerts=sum(1 for e in events if e.type == "maintenance_due"),
    )


def _utilization(
    segments: Sequence[PathSegment],
    period: TimePeriod,
    maintenance_windows: Sequence[tuple[datetime, datetime]],
) -> UtilizationMetrics:
    hours = {"working": 0.0, "idle": 0.0, "transport": 0.0}
    for seg in segments:
        if seg.type in hours:
            hours[seg.type] += seg.duration / 3600
    maintenance_h = _merged_overlap_hours(maintenance_windows, period.start, period.end)
    tracked = hours["working"] + hours["idle"] + hours["transport"] + maintenance_h
    return UtilizationMetrics(
        working_time=hours["working"],
        idle_time=hours["idle"],
        transport_time=hours["transport"],
        maintenance_time=maintenance_h,
        utilization_rate=_pct(hours["working"], tracked),
        availability_rate=_pct(period.duration_hours - maintenance_h, period.duration_hours),
    )


def _location(
    records: Sequence[TelemetryRecord],
    points: Sequence[PathPoint],
    geofence: Sequence[Location] | None,
) -> LocationMetrics:
    fields = tuple(sorted({r.field_id for r in records if r.field_id}))

    violations = 0
    if geofence and len(geofence) >= 3:
        was_inside: bool | None = None
        for p in points:
            inside = point_in_polygon(p, geofence)
            if was_inside and not inside:
                violations += 1
            was_inside = inside

    if not points:
        return LocationMetrics(fields, violations, None, 0.0, 0.0)

    center = center_of(points)
    radius_km = max(distance(center, p) for p in points) / 1000
    travelled = path_distance(points)
    straight = distance(points[0], points[-1])
    route_efficiency = min(100.0, _pct(straight, travelled))
    return LocationMetrics(fields, violations, center, radius_km, route_efficiency)


def _events(events: Sequence[TelemetryEvent], period: TimePeriod) -> EventSummary:
    by_type: dict[str, list[TelemetryEvent]] = {}
    for e in events:
        by_type.setdefault(e.type, []).append(e)

    summaries = []
    for event_type in sorted(by_type):
        group = by_type[event_type]
        stamps = [e.timestamp for e in group]
        summaries.append(EventTypeSummary(
            type=event_type,
            count=len(group),
            severity=max((e.severity for e in group), key=lambda s: _SEVERITY_RANK.get(s, 0)),
            first_occurrence=min(stamps),
            last_occurrence=max(stamps),
            trend=trend_between(stamps, period.start, period.end),
        ))

    distribution = {s: 0 for s in SEVERITIES}
    for e in events:
        distribution[e.severity] = distribution.get(e.severity, 0) + 1
    acknowledged = sum(1 for e in events if e.acknowledged)

    return EventSummary(
        total_events=len(events),
        events_by_type=tuple(summaries),
        severity_distribution=distribution,
        acknowledged_count=acknowledged,
        unresolved_count=len(events) - acknowledged,
    )


def _alerts(vehicle_id: str, events: Sequence[TelemetryEvent], period: TimePeriod) -> tuple[AlertSummary, ...]:
    by_type: dict[str, list[TelemetryEvent]] = {}
    for e in events:
        if _SEVERITY_RANK.get(e.severity, 0) >= _SEVERITY_RANK["warning"]:
            by_type.setdefault(e.type, []).append(e)

    alerts = []
    for event_type, group in by_type.items():
        severity = max((e.severity for e in group), key=lambda s: _SEVERITY_RANK[s])
        stamps = [e.timestamp for e in group]
        latest = max(group, key=lambda e: e.timestamp)
        category, action = ALERT_IMPACTS.get(event_type, ("efficiency", ""))
        alerts.append(AlertSummary(
            id=f"alert_{vehicle_id}_{event_type}",
            type=event_type,
            message=latest.description or event_type.replace("_", " "),
            severity=severity,
            first_triggered=min(stamps),
            last_triggered=max(stamps),
            occurrence_count=len(group),
            status="acknowledged" if all(e.acknowledged for e in group) else "active",
            impact=AlertImpact(category=category, urgency=_URGENCY[severity], recommended_action=action),
            trend=trend_between(stamps, period.start, period.end),
        ))

    alerts.sort(key=lambda a: (-_SEVERITY_RANK[a.severity], a.first_triggered, a.type))
    return tuple(alerts)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def aggregate(
    vehicle_id: str,
    period: TimePeriod,
    records: Sequence[TelemetryRecord],
    *,
    maintenance_windows: Sequence[tuple[datetime, datetime]] = (),
    geofence: Sequence[Location] | None = None,
    fuel_price_per_liter: float | None = None,
) -> AggregatedTelemetry:
    """Roll one vehicle's records for ``period`` into an AggregatedTelemetry.

    Args:
        vehicle_id: Vehicle to aggregate; other vehicles' records are skipped.
        period: Time bucket; only records inside ``[start, end)`` count.
        records: Validated records ordered by timestamp.
        maintenance_windows: ``(start, end)`` spans the vehicle was in the
            shop, clipped to the period.
        geofence: Polygon whose exits count as violations.
        fuel_price_per_liter: Enables ``fuel.fuel_cost``.
    """
    recs = [r for r in records if r.vehicle_id == vehicle_id and period.contains(r.timestamp)]
    points = [record_to_point(r) for r in recs]
    segments = segment_path(points)
    events = [e for r in recs for e in r.events if period.contains(e.timestamp)]

    distance_metrics, fuel_metrics, runtime_h, load_minutes = _distance_and_fuel(
        recs, points, fuel_price_per_liter,
    )
    engine_metrics = _engine(recs, runtime_h, load_minutes, events)
    utilization = _utilization(segments, period, maintenance_windows)

    if fuel_metrics.total_consumed > 0:
        fuel_score = 100 * (1 - fuel_metrics.idle_fuel_waste / fuel_metrics.total_consumed)
    else:
        fuel_score = 100.0
    time_score = utilization.utilization_rate
    qualities = [r.quality_score for r in recs if r.quality_score is not None]
    quality_score = sum(qualities) / len(qualities) if qualities else 100.0

    efficiency = EfficiencyMetrics(
        productivity_score=time_score,
        fuel_efficiency_score=fuel_score,
        work_quality_score=quality_score,
        overall_score=efficiency_score(fuel_score, time_score, quality_score),
    )

    return AggregatedTelemetry(
        vehicle_id=vehicle_id,
        period=period,
        start_time=period.start,
        end_time=period.end,
        record_count=len(recs),
        metrics=AggregatedMetrics(
            distance=distance_metrics,
            fuel=fuel_metrics,
            engine=engine_metrics,
            efficiency=efficiency,
            utilization=utilization,
            location=_location(recs, points, geofence),
        ),
        events=_events(events, period),
        alerts=_alerts(vehicle_id, events, period),
        segments=tuple(segments),
    )


def aggregate_series(
    vehicle_id: str,
    kind: PeriodKind,
    start: datetime,
    end: datetime,
    records: Sequence[TelemetryRecord],
    **kwargs: Any,
) -> list[AggregatedTelemetry]:
    """One aggregate per consecutive ``kind`` bucket from ``start`` until ``end``.

    The last bucket keeps its full length even if it runs past ``end``.
    """
    results = []
    period = TimePeriod(kind, start)
    while period.start < end:
        results.append(aggregate(vehicle_id, period, records, **kwargs))
        period = period.next()
    return results
