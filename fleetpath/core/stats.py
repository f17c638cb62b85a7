"""Server statistics and active-vehicle tracking.

Tracks in-memory counters and a sliding window of vehicles that reported
recently. No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class VehicleActivity:
    """Tracks a single vehicle's recent reporting activity."""
    last_seen: float          # time.monotonic() timestamp
    records_sent: int = 0


class ServerStats:
    """Thread-safe server statistics with active-vehicle tracking.

    A vehicle is "active" if it sent telemetry within
    ``active_window_seconds`` (default 300s).
    """

    def __init__(self, active_window_seconds: float = 300.0) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._active_window = active_window_seconds

        # Counters
        self.requests_received: int = 0
        self.records_received: int = 0
        self.records_stored: int = 0
        self.records_rejected: int = 0
        self.warnings_raised: int = 0
        self.bytes_received: int = 0
        self.storage_errors: int = 0
        self.path_queries: int = 0
        self.aggregate_queries: int = 0

        # Vehicle tracking: vehicle_id → VehicleActivity
        self._vehicles: dict[str, VehicleActivity] = {}

    def record_request(self, count: int, size_bytes: int) -> None:
        """Record an ingest request carrying ``count`` records."""
        with self._lock:
            self.requests_received += 1
            self.records_received += count
            self.bytes_received += size_bytes

    def record_stored(self, vehicle_id: str, count: int = 1) -> None:
        now = time.monotonic()
        with self._lock:
            self.records_stored += count
            if vehicle_id in self._vehicles:
                activity = self._vehicles[vehicle_id]
                activity.last_seen = now
                activity.records_sent += count
            else:
                self._vehicles[vehicle_id] = VehicleActivity(last_seen=now, records_sent=count)

    def record_rejected(self, count: int = 1) -> None:
        with self._lock:
            self.records_rejected += count

    def record_warnings(self, count: int) -> None:
        with self._lock:
            self.warnings_raised += count

    def record_storage_error(self) -> None:
        with self._lock:
            self.storage_errors += 1

    def record_path_query(self) -> None:
        with self._lock:
            self.path_queries += 1

    def record_aggregate_query(self) -> None:
        with self._lock:
            self.aggregate_queries += 1

    def _prune_stale_vehicles(self, now: float) -> None:
        """Remove vehicles not seen within the active window. Caller holds lock."""
        cutoff = now - self._active_window
        stale = [vid for vid, v in self._vehicles.items() if v.last_seen < cutoff]
        for vid in stale:
            del self._vehicles[vid]

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        now_mono = time.monotonic()
        with self._lock:
            self._prune_stale_vehicles(now_mono)

            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "requests_received": self.requests_received,
                "records_received": self.records_received,
                "records_stored": self.records_stored,
                "records_rejected": self.records_rejected,
                "warnings_raised": self.warnings_raised,
                "bytes_received": self.bytes_received,
                "storage_errors": self.storage_errors,
                "path_queries": self.path_queries,
                "aggregate_queries": self.aggregate_queries,
                "active_vehicles": {
                    "total": len(self._vehicles),
                    "window_seconds": self._active_window,
                },
            }
