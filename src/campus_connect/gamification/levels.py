"""Level computation.

A user's level is derived from total points only:
``level = floor(total_points / 100) + 1``.
"""

from __future__ import annotations

POINTS_PER_LEVEL = 100


def compute_level(total_points: int) -> int:
    """Return the level for a point total."""
    return max(total_points, 0) // POINTS_PER_LEVEL + 1


def level_progress(total_points: int) -> dict:
    """Return level, points into the level and points still needed for the next one."""
    level = compute_level(total_points)
    next_level_points = level * POINTS_PER_LEVEL
    return {
        "level": level,
        "total_points": total_points,
        "points_into_level": total_points - (level - 1) * POINTS_PER_LEVEL,
        "next_level_at": next_level_points,
        "points_to_next_level": next_level_points - total_points,
    }
