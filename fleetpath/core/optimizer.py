"""Path decimation for display.

Plain stride sampling, not shape-preserving simplification: detail between
kept points is dropped. The final point is always kept so the rendered
path ends where the vehicle actually is.
"""

from __future__ import annotations

import math
from typing import Sequence, TypeVar

T = TypeVar("T")

DEFAULT_MAX_POINTS = 1000


def optimize_path_for_display(points: Sequence[T], max_points: int = DEFAULT_MAX_POINTS) -> list[T]:
    """Keep every ``ceil(len / max_points)``-th point plus the last one.

    The result never exceeds ``max_points``. Lists already within budget
    come back unchanged.
    """
    if max_points < 1:
        raise ValueError(f"max_points must be >= 1, got {max_points}")
    if len(points) <= max_points:
        return list(points)

    step = math.ceil(len(points) / max_points)
    optimized = list(points[::step])

    last_index = len(points) - 1
    if last_index % step != 0:
        # Make room for the final point if the stride already filled the budget.
        del optimized[max_points - 1:]
        optimized.append(points[last_index])

    return optimized
