"""Achievement evaluation and awarding engine."""

from typing import Callable, Dict, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import structlog

from app.core.config import settings
from app.gamification.levels import level_for
from app.models.gamification import Achievement, AchievementCategory, ActivityKind, UserPoints
from app.schemas.gamification import AchievementCreate

logger = structlog.get_logger()


def _count(activities: List[dict], kind: ActivityKind) -> int:
    return sum(1 for a in activities if a.get("kind") == kind.value)


def _points(activities: List[dict], *kinds: ActivityKind) -> int:
    wanted = {k.value for k in kinds}
    return sum(a.get("points", 0) for a in activities if a.get("kind") in wanted)


# Every criterion reads the activity log only; ACHIEVEMENT entries are never
# counted, so awards within one pass cannot unlock each other.
CRITERIA: Dict[AchievementCategory, Callable[[List[dict]], bool]] = {
    AchievementCategory.ATTENDANCE: lambda log: _count(log, ActivityKind.ATTENDANCE) >= settings.ACHIEVEMENT_ATTENDANCE_COUNT,
    AchievementCategory.NETWORKING: lambda log: _count(log, ActivityKind.NETWORKING) >= settings.ACHIEVEMENT_NETWORKING_COUNT,
    AchievementCategory.ENGAGEMENT: lambda log: _points(
        log, ActivityKind.CHALLENGE, ActivityKind.FEEDBACK
    ) >= settings.ACHIEVEMENT_ENGAGEMENT_POINTS,
    AchievementCategory.FEEDBACK: lambda log: _count(log, ActivityKind.FEEDBACK) >= settings.ACHIEVEMENT_FEEDBACK_COUNT,
    AchievementCategory.SOCIAL: lambda log: _count(log, ActivityKind.SOCIAL) >= settings.ACHIEVEMENT_SOCIAL_COUNT,
}


def is_earned(achievement: Achievement, activities: List[dict]) -> bool:
    criterion = CRITERIA.get(AchievementCategory(achievement.category))
    return criterion is not None and criterion(activities)


class AchievementEngine:
    """Engine for checking and awarding achievements."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def evaluate(self, user_points: UserPoints) -> List[Achievement]:
        """Award every unowned achievement whose threshold the log now meets.

        Each award appends an ownership entry and an ACHIEVEMENT activity
        carrying the bonus, so the total stays equal to the activity sum.
        The caller must hold the ledger lock for this user and event.
        """
        achievements = await self.list_achievements()
        owned = user_points.owned_achievement_ids()
        activities = list(user_points.activities or [])
        owned_entries = list(user_points.achievements or [])

        awarded = []
        for achievement in achievements:
            if str(achievement.id) in owned:
                continue
            if not is_earned(achievement, activities):
                continue

            now = datetime.utcnow().isoformat()
            owned_entries.append({"achievement_id": str(achievement.id), "date_earned": now})
            activities.append({
                "kind": ActivityKind.ACHIEVEMENT.value,
                "description": f"Achievement unlocked: {achievement.name}",
                "points": achievement.points,
                "timestamp": now
            })
            owned.add(str(achievement.id))
            awarded.append(achievement)

        if not awarded:
            return awarded

        user_points.achievements = owned_entries
        user_points.activities = activities
        user_points.points = user_points.points + sum(a.points for a in awarded)
        user_points.level = level_for(user_points.points)

        await self.db.commit()
        for achievement in awarded:
            logger.info(
                "Achievement awarded",
                user_id=user_points.user_id,
                event_id=user_points.event_id,
                achievement_name=achievement.name,
                bonus_points=achievement.points
            )
        return awarded

    async def list_achievements(self) -> List[Achievement]:
        result = await self.db.execute(
            select(Achievement).order_by(Achievement.created_at, Achievement.id)
        )
        return list(result.scalars().all())

    async def create_achievement(self, payload: AchievementCreate) -> Achievement:
        achievement = Achievement(
            name=payload.name,
            description=payload.description,
            image=payload.image,
            points=payload.points,
            criteria=payload.criteria,
            category=payload.category.value
        )
        self.db.add(achievement)

        try:
            await self.db.commit()
        except Exception as e:
            logger.error("Failed to create achievement", error=str(e))
            await self.db.rollback()
            raise

        logger.info("Achievement created", achievement_id=str(achievement.id), category=achievement.category)
        return achievement
