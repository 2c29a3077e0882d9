"""Event leaderboard ranking and point-distribution statistics."""

from collections import Counter
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import numpy as np
import structlog

from app.core.config import settings
from app.models.gamification import UserPoints
from app.schemas.gamification import LeaderboardEntry, LeaderboardStats

logger = structlog.get_logger()


def leaderboard_generation_key(event_id: str) -> str:
    return f"leaderboard:{event_id}:gen"


def leaderboard_cache_key(event_id: str, generation: int = 0) -> str:
    return f"leaderboard:{event_id}:{generation}"


async def invalidate_leaderboard(cache, event_id: str):
    """Move the event to a new cache generation. Cache errors are not fatal.

    Must run after the ledger write commits. Rankings cached under an older
    generation are never read again and expire with their TTL.
    """
    if cache is None:
        return
    try:
        await cache.increment(leaderboard_generation_key(event_id))
    except Exception as e:
        logger.warning("Failed to invalidate leaderboard cache", event_id=event_id, error=str(e))


class LeaderboardAggregator:
    """Ranks ledger records of an event by total points.

    Equal totals are ordered by earlier ledger creation, then by record id,
    so repeated queries over unchanged data return the same order.
    """

    def __init__(self, db: AsyncSession, cache=None):
        self.db = db
        self.cache = cache

    async def get_leaderboard(self, event_id: str, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        if limit is None:
            limit = settings.LEADERBOARD_DEFAULT_LIMIT
        limit = max(1, min(limit, settings.LEADERBOARD_SIZE))

        ranking = await self._cached_ranking(event_id)
        return [LeaderboardEntry(**row) for row in ranking[:limit]]

    async def get_stats(self, event_id: str) -> LeaderboardStats:
        """Summary statistics of the event's point distribution."""
        result = await self.db.execute(
            select(UserPoints.points, UserPoints.level).where(UserPoints.event_id == event_id)
        )
        rows = result.all()

        if not rows:
            return LeaderboardStats(
                event_id=event_id,
                participants=0,
                total_points=0,
                mean_points=0.0,
                median_points=0.0,
                p90_points=0.0,
                max_points=0
            )

        totals = np.array([row.points for row in rows], dtype=float)
        levels = Counter(row.level for row in rows)

        return LeaderboardStats(
            event_id=event_id,
            participants=len(rows),
            total_points=int(totals.sum()),
            mean_points=round(float(np.mean(totals)), 2),
            median_points=round(float(np.median(totals)), 2),
            p90_points=round(float(np.percentile(totals, 90)), 2),
            max_points=int(totals.max()),
            level_distribution=dict(sorted(levels.items()))
        )

    async def _cached_ranking(self, event_id: str) -> List[Dict[str, Any]]:
        if self.cache is None:
            return await self._rank(event_id)

        # Read the generation before ranking; a write committing meanwhile retires it
        key = None
        try:
            generation = await self.cache.get(leaderboard_generation_key(event_id)) or 0
            key = leaderboard_cache_key(event_id, int(generation))
            cached = await self.cache.get(key)
            if cached is not None:
                return cached
        except Exception as e:
            logger.warning("Leaderboard cache read failed", event_id=event_id, error=str(e))

        ranking = await self._rank(event_id)

        if key is not None:
            try:
                await self.cache.set(key, ranking, ttl=settings.LEADERBOARD_CACHE_TTL)
            except Exception as e:
                logger.warning("Leaderboard cache write failed", event_id=event_id, error=str(e))

        return ranking

    async def _rank(self, event_id: str) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(UserPoints)
            .where(UserPoints.event_id == event_id)
            .order_by(UserPoints.points.desc(), UserPoints.created_at.asc(), UserPoints.id.asc())
            .limit(settings.LEADERBOARD_SIZE)
        )

        ranking = []
        for idx, row in enumerate(result.scalars().all()):
            ranking.append({
                "rank": idx + 1,
                "user_id": row.user_id,
                "username": row.username,
                "points": row.points,
                "level": row.level
            })
        return ranking
