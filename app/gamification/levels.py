"""Level derivation from point totals."""

from app.core.config import settings


def level_for(points: int) -> int:
    """Level is floor(points / POINTS_PER_LEVEL) + 1."""
    return points // settings.POINTS_PER_LEVEL + 1


def points_to_next_level(points: int) -> int:
    return level_for(points) * settings.POINTS_PER_LEVEL - points
