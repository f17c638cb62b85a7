"""Tests for ServerStats and active vehicle tracking."""

from __future__ import annotations

import time

from fleetpath.core.stats import ServerStats


def test_initial_stats():
    stats = ServerStats()
    snap = stats.snapshot()
    assert snap["requests_received"] == 0
    assert snap["records_stored"] == 0
    assert snap["active_vehicles"]["total"] == 0
    assert snap["active_vehicles"]["window_seconds"] == 300.0


def test_record_request():
    stats = ServerStats()
    stats.record_request(10, 7000)
    stats.record_request(1, 700)

    snap = stats.snapshot()
    assert snap["requests_received"] == 2
    assert snap["records_received"] == 11
    assert snap["bytes_received"] == 7700


def test_record_stored_tracks_vehicles():
    stats = ServerStats()
    stats.record_stored("tractor-a")
    stats.record_stored("tractor-a", count=4)
    stats.record_stored("tractor-b")

    snap = stats.snapshot()
    assert snap["records_stored"] == 6
    assert snap["active_vehicles"]["total"] == 2


def test_rejections_and_warnings():
    stats = ServerStats()
    stats.record_rejected(3)
    stats.record_warnings(2)
    stats.record_storage_error()

    snap = stats.snapshot()
    assert snap["records_rejected"] == 3
    assert snap["warnings_raised"] == 2
    assert snap["storage_errors"] == 1


def test_stale_vehicles_pruned():
    """Vehicles older than the active window should be pruned from stats."""
    stats = ServerStats(active_window_seconds=0.1)
    stats.record_stored("tractor-e")

    # Should be active immediately
    snap = stats.snapshot()
    assert snap["active_vehicles"]["total"] == 1

    # Wait for the window to expire
    time.sleep(0.15)

    snap = stats.snapshot()
    assert snap["active_vehicles"]["total"] == 0


def test_query_counters():
    stats = ServerStats()
    stats.record_path_query()
    stats.record_path_query()
    stats.record_aggregate_query()

    snap = stats.snapshot()
    assert snap["path_queries"] == 2
    assert snap["aggregate_queries"] == 1


def test_uptime():
    stats = ServerStats()
    snap = stats.snapshot()
    assert snap["uptime_seconds"] >= 0
