"""Challenge catalog: lookup, listing and creation of challenge definitions."""

from datetime import datetime
from typing import List, Optional
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
import structlog

from app.core.errors import NotFoundError
from app.models.challenge import Challenge
from app.schemas.challenge import ChallengeCreate

logger = structlog.get_logger()


class ChallengeCatalog:
    """Read view over stored challenges, plus organizer creation."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self, event_id: str, now: Optional[datetime] = None) -> List[Challenge]:
        """Challenges of an event that are active and inside their window."""
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(Challenge)
            .where(
                and_(
                    Challenge.event_id == event_id,
                    Challenge.is_active.is_(True),
                    Challenge.start_time <= now,
                    Challenge.end_time >= now
                )
            )
            .order_by(Challenge.created_at, Challenge.id)
        )
        return list(result.scalars().all())

    async def get_by_id(self, challenge_id: uuid.UUID) -> Challenge:
        challenge = await self.db.get(Challenge, challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found")
        return challenge

    async def create(self, payload: ChallengeCreate) -> Challenge:
        challenge = Challenge(
            event_id=payload.event_id,
            title=payload.title,
            description=payload.description,
            kind=payload.kind.value,
            total_points=payload.total_points,
            start_time=payload.start_time,
            end_time=payload.end_time,
            is_active=payload.is_active,
            details=payload.details.model_dump(mode="json"),
            is_ai_generated=payload.is_ai_generated,
            ai_metadata=payload.ai_metadata.model_dump(mode="json") if payload.ai_metadata else None
        )
        self.db.add(challenge)

        try:
            await self.db.commit()
        except Exception as e:
            logger.error("Failed to create challenge", event_id=payload.event_id, error=str(e))
            await self.db.rollback()
            raise

        logger.info(
            "Challenge created",
            challenge_id=str(challenge.id),
            event_id=challenge.event_id,
            kind=challenge.kind,
            ai_generated=challenge.is_ai_generated
        )
        return challenge
