"""Per-user challenge progress state machine."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from sqlalchemy import select, and_
import structlog

from app.core.config import settings
from app.core.errors import ConflictError
from app.core.locks import KeyedLocks, progress_locks
from app.gamification.points_engine import PointsEngine
from app.gamification.scoring import CheckinGrade, QuizGrade, grade_checkin, grade_quiz
from app.models.challenge import Challenge
from app.models.gamification import ActivityKind
from app.models.progress import ChallengeProgress, ProgressStatus
from app.schemas.challenge import ProgressResponse

logger = structlog.get_logger()


@dataclass
class QuizOutcome:
    progress: ChallengeProgress
    grade: QuizGrade
    # Points credited by this grading minus those credited by the previous one
    points_delta: int
    resubmitted: bool


@dataclass
class CheckinOutcome:
    progress: ChallengeProgress
    grade: CheckinGrade


class ProgressTracker:
    """Moves (user, challenge) progress NOT_STARTED -> IN_PROGRESS -> COMPLETED.

    Every mutation runs under a per-(user, challenge) lock, so the read of the
    current record and the write of its successor form one unit. Quiz and
    check-in changes commit in the same transaction as their ledger credit.
    """

    def __init__(
        self,
        db: AsyncSession,
        points: Optional[PointsEngine] = None,
        locks: KeyedLocks = progress_locks
    ):
        self.db = db
        self.points = points or PointsEngine(db)
        self.locks = locks

    async def start(self, user_id: str, challenge: Challenge) -> Tuple[ChallengeProgress, bool]:
        """Begin a challenge. Returns the record and whether it was created."""
        async with self.locks.hold(user_id, challenge.id):
            progress = await self._get(user_id, challenge.id, for_update=True)
            if progress is not None:
                return progress, False

            progress, created = await self._create(user_id, challenge)
            await self._commit("start", user_id, challenge.id)

            logger.info("Challenge started", user_id=user_id, challenge_id=str(challenge.id))
            return progress, created

    async def submit_quiz(
        self,
        user_id: str,
        challenge: Challenge,
        answers: Sequence[str],
        username: Optional[str] = None
    ) -> QuizOutcome:
        """Grade a quiz, overwrite the stored answers and credit the ledger."""
        grade = grade_quiz(challenge, answers)
        challenge_id, event_id, title = challenge.id, challenge.event_id, challenge.title

        async with self._hold(user_id, challenge_id, event_id):
            progress = await self._get(user_id, challenge_id, for_update=True)
            if progress is None:
                progress, _ = await self._create(user_id, challenge)

            resubmitted = progress.is_completed
            if resubmitted and not settings.QUIZ_ALLOW_RESUBMISSION:
                raise ConflictError("Quiz already submitted")

            previous_points = progress.points_earned if resubmitted else 0
            points_delta = grade.points_earned - previous_points
            now = datetime.utcnow()

            progress.answers = [result.as_record() for result in grade.results]
            progress.points_earned = grade.points_earned
            progress.percent_complete = 100.0
            progress.status = ProgressStatus.COMPLETED.value
            progress.completed_at = now

            if resubmitted and points_delta == 0:
                await self._commit("submit_quiz", user_id, challenge_id)
            else:
                description = f"Re-graded quiz: {title}" if resubmitted else f"Completed quiz: {title}"
                await self._credit(progress, user_id, event_id, points_delta, description, username)

        logger.info(
            "Quiz submitted",
            user_id=user_id,
            challenge_id=str(challenge_id),
            points_earned=grade.points_earned,
            correct_answers=grade.correct_answers,
            total_questions=grade.total_questions,
            resubmitted=resubmitted
        )
        return QuizOutcome(
            progress=progress,
            grade=grade,
            points_delta=points_delta,
            resubmitted=resubmitted
        )

    async def checkin(
        self,
        user_id: str,
        challenge: Challenge,
        code: str,
        username: Optional[str] = None
    ) -> CheckinOutcome:
        """Record discovery of a scavenger location, at most once per location."""
        grade = grade_checkin(challenge, code)
        challenge_id, event_id = challenge.id, challenge.event_id

        async with self._hold(user_id, challenge_id, event_id):
            progress = await self._get(user_id, challenge_id, for_update=True)
            if progress is None:
                progress, _ = await self._create(user_id, challenge)

            found = list(progress.locations_found or [])
            if any(entry["location_index"] == grade.location_index for entry in found):
                raise ConflictError("You've already found this location")

            now = datetime.utcnow()
            found.append({
                "location_index": grade.location_index,
                "found_at": now.isoformat(),
                "points_earned": grade.points_earned
            })

            progress.locations_found = found
            progress.points_earned = progress.points_earned + grade.points_earned
            if len(found) >= grade.total_locations:
                progress.percent_complete = 100.0
                progress.status = ProgressStatus.COMPLETED.value
                progress.completed_at = now
            else:
                progress.percent_complete = len(found) / grade.total_locations * 100

            await self._credit(
                progress,
                user_id,
                event_id,
                grade.points_earned,
                f"Found location in scavenger hunt: {grade.location.name}",
                username
            )

        logger.info(
            "Location checked in",
            user_id=user_id,
            challenge_id=str(challenge_id),
            location_index=grade.location_index,
            percent_complete=progress.percent_complete,
            status=progress.status
        )
        return CheckinOutcome(progress=progress, grade=grade)

    async def get_progress(self, user_id: str, challenge_id: uuid.UUID) -> ProgressResponse:
        """Stored progress, or a NOT_STARTED projection that is not persisted."""
        progress = await self._get(user_id, challenge_id)
        if progress is None:
            return ProgressResponse.not_started(user_id, challenge_id)
        return ProgressResponse.model_validate(progress)

    async def list_for_user(self, user_id: str) -> List[ChallengeProgress]:
        """All progress records of a user, with their challenges loaded."""
        result = await self.db.execute(
            select(ChallengeProgress)
            .options(selectinload(ChallengeProgress.challenge))
            .where(ChallengeProgress.user_id == user_id)
            .order_by(ChallengeProgress.created_at, ChallengeProgress.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _get(
        self,
        user_id: str,
        challenge_id: uuid.UUID,
        for_update: bool = False
    ) -> Optional[ChallengeProgress]:
        query = select(ChallengeProgress).where(
            and_(
                ChallengeProgress.user_id == user_id,
                ChallengeProgress.challenge_id == challenge_id
            )
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _create(self, user_id: str, challenge: Challenge) -> Tuple[ChallengeProgress, bool]:
        """Insert an IN_PROGRESS record, or return the one another process won with."""
        challenge_id = challenge.id
        progress = ChallengeProgress(
            user_id=user_id,
            challenge_id=challenge_id,
            status=ProgressStatus.IN_PROGRESS.value,
            percent_complete=0.0,
            points_earned=0,
            answers=[],
            locations_found=[],
            started_at=datetime.utcnow()
        )
        self.db.add(progress)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            # Rollback expires everything loaded in this session
            await self.db.refresh(challenge)
            existing = await self._get(user_id, challenge_id, for_update=True)
            if existing is None:
                raise
            logger.info("Progress created concurrently", user_id=user_id, challenge_id=str(challenge_id))
            return existing, False
        return progress, True

    async def _commit(self, operation: str, user_id: str, challenge_id: uuid.UUID):
        try:
            await self.db.commit()
        except Exception as e:
            logger.error(
                "Failed to save progress",
                operation=operation,
                user_id=user_id,
                challenge_id=str(challenge_id),
                error=str(e)
            )
            await self.db.rollback()
            raise

    @asynccontextmanager
    async def _hold(self, user_id: str, challenge_id: uuid.UUID, event_id: str):
        # Always progress first, then ledger
        async with self.locks.hold(user_id, challenge_id):
            async with self.points.locks.hold(user_id, event_id):
                yield

    async def _credit(
        self,
        progress: ChallengeProgress,
        user_id: str,
        event_id: str,
        points: int,
        description: str,
        username: Optional[str]
    ):
        """Commit the pending progress change together with its ledger activity."""
        try:
            await self.points.credit(user_id, event_id, points, ActivityKind.CHALLENGE, description, username)
        except Exception:
            await self.db.rollback()
            raise
        # A failed achievement pass rolls the session back after the commit
        await self.db.refresh(progress)
