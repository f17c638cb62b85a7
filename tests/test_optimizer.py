"""Tests for display decimation."""

from __future__ import annotations

import pytest

from fleetpath.core.optimizer import optimize_path_for_display


def test_within_budget_is_unchanged():
    points = list(range(10))
    assert optimize_path_for_display(points, 10) == points
    assert optimize_path_for_display(points, 50) == points


def test_stride_keeps_every_nth_and_last():
    points = list(range(2500))
    result = optimize_path_for_display(points, 1000)

    # step = 3: indices 0, 3, ..., 2496, then the last index.
    assert result[:3] == [0, 3, 6]
    assert result[-1] == 2499
    assert len(result) == 834


def test_never_exceeds_budget():
    for n in (11, 99, 101, 1001, 1999, 2001, 4999):
        for budget in (1, 2, 7, 10, 100, 1000):
            result = optimize_path_for_display(list(range(n)), budget)
            assert len(result) <= budget, (n, budget)
            assert result[-1] == n - 1
            assert result[0] == 0 or budget == 1


def test_stride_that_fills_budget_still_ends_on_last_point():
    # 11 points, budget 10: step 2 yields 6 points, no truncation needed.
    assert optimize_path_for_display(list(range(11)), 10) == [0, 2, 4, 6, 8, 10]
    # 7 points, budget 2: step 4 yields [0, 4]; 4 is replaced by 6.
    assert optimize_path_for_display(list(range(7)), 2) == [0, 6]


def test_rejects_empty_budget():
    with pytest.raises(ValueError):
        optimize_path_for_display([1, 2, 3], 0)


def test_empty_input():
    assert optimize_path_for_display([], 10) == []
