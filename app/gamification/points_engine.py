"""Points ledger: per-(user, event) activity log, running total and level."""

from typing import Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, and_
import structlog

from app.core.locks import KeyedLocks, points_locks
from app.gamification.achievement_engine import AchievementEngine
from app.gamification.leaderboard import invalidate_leaderboard
from app.gamification.levels import level_for
from app.models.gamification import UserPoints, ActivityKind
from app.schemas.gamification import UserPointsResponse

logger = structlog.get_logger()


class PointsEngine:
    """Engine for recording activities and awarding points."""

    def __init__(self, db: AsyncSession, cache=None, locks: KeyedLocks = points_locks):
        self.db = db
        self.cache = cache
        self.locks = locks

    async def add_points(
        self,
        user_id: str,
        event_id: str,
        points: int,
        kind: ActivityKind,
        description: str = "",
        username: Optional[str] = None
    ) -> UserPoints:
        """Append an activity to the user's ledger and re-evaluate achievements.

        The append and the achievement pass run under one per-(user, event)
        lock. If the achievement pass fails, the appended activity stays and
        the returned record reflects the state before evaluation.
        """
        async with self.locks.hold(user_id, event_id):
            return await self.credit(user_id, event_id, points, kind, description, username)

    async def credit(
        self,
        user_id: str,
        event_id: str,
        points: int,
        kind: ActivityKind,
        description: str = "",
        username: Optional[str] = None
    ) -> UserPoints:
        """Append an activity and commit it with everything else pending in the session.

        The caller must hold the ledger lock for (user_id, event_id). On a
        failed commit the whole session is rolled back.
        """
        try:
            user_points = await self._get_or_create_points(user_id, event_id, username)
            self._append_activity(user_points, kind, description, points)
            await self.db.commit()
        except Exception as e:
            logger.error(
                "Failed to award points",
                user_id=user_id,
                event_id=event_id,
                points=points,
                error=str(e)
            )
            await self.db.rollback()
            raise

        logger.info(
            "Points awarded",
            user_id=user_id,
            event_id=event_id,
            points=points,
            kind=kind.value,
            total_points=user_points.points,
            level=user_points.level
        )

        try:
            awarded = await AchievementEngine(self.db).evaluate(user_points)
        except Exception:
            logger.exception("Achievement evaluation failed", user_id=user_id, event_id=event_id)
            await self.db.rollback()
            await self.db.refresh(user_points)
        else:
            if awarded:
                logger.info(
                    "Achievements unlocked",
                    user_id=user_id,
                    event_id=event_id,
                    achievements=[str(a.id) for a in awarded],
                    total_points=user_points.points
                )

        await invalidate_leaderboard(self.cache, event_id)
        return user_points

    async def get_points(self, user_id: str, event_id: str) -> UserPointsResponse:
        """Stored ledger, or a zero-value projection that is not persisted."""
        user_points = await self._get_points(user_id, event_id)
        if user_points is None:
            return UserPointsResponse.empty(user_id, event_id)
        return UserPointsResponse.model_validate(user_points)

    @staticmethod
    def _append_activity(user_points: UserPoints, kind: ActivityKind, description: str, points: int):
        activities = list(user_points.activities or [])
        activities.append({
            "kind": kind.value,
            "description": description,
            "points": points,
            "timestamp": datetime.utcnow().isoformat()
        })
        user_points.activities = activities
        user_points.points = (user_points.points or 0) + points
        user_points.level = level_for(user_points.points)

    async def _get_points(self, user_id: str, event_id: str, for_update: bool = False) -> Optional[UserPoints]:
        query = select(UserPoints).where(
            and_(
                UserPoints.user_id == user_id,
                UserPoints.event_id == event_id
            )
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _get_or_create_points(self, user_id: str, event_id: str, username: Optional[str]) -> UserPoints:
        """Get or create the ledger record, locked for this transaction."""
        points = await self._get_points(user_id, event_id, for_update=True)

        if points is None:
            points = UserPoints(
                user_id=user_id,
                event_id=event_id,
                username=username,
                points=0,
                level=level_for(0),
                activities=[],
                achievements=[]
            )
            try:
                # Savepoint keeps other pending changes of the session intact
                async with self.db.begin_nested():
                    self.db.add(points)
            except IntegrityError:
                # Created by another process between our read and insert
                points = await self._get_points(user_id, event_id, for_update=True)
                if points is None:
                    raise
        if username and points.username != username:
            points.username = username

        return points
