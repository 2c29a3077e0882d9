"""Challenge catalog and progress endpoints."""

from typing import List
from datetime import datetime, timedelta
import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_cache, get_content_generator, get_current_user, require_organizer
from app.gamification.catalog import ChallengeCatalog
from app.gamification.points_engine import PointsEngine
from app.gamification.progress_tracker import ProgressTracker
from app.generation.content_generator import GeminiContentGenerator
from app.schemas.challenge import (
    AIMetadata, ChallengeCreate, ChallengeResponse, CheckinRequest, CheckinResponse,
    GenerateQuizRequest, ProgressResponse, ProgressWithChallenge, QuizDetails,
    QuizSubmission, QuizSubmissionResponse
)

logger = structlog.get_logger()
router = APIRouter()


@router.get("/event/{event_id}", response_model=List[ChallengeResponse])
async def list_event_challenges(event_id: str, db: AsyncSession = Depends(get_db)):
    """Challenges of an event that are active right now."""
    return await ChallengeCatalog(db).list_active(event_id)


@router.get("/user/progress", response_model=List[ProgressWithChallenge])
async def get_user_progress(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Every challenge the caller has interacted with, with its progress."""
    return await ProgressTracker(db).list_for_user(current_user["user_id"])


@router.post("", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    payload: ChallengeCreate,
    current_user: dict = Depends(require_organizer),
    db: AsyncSession = Depends(get_db)
):
    """Create a challenge from an organizer-authored payload."""
    return await ChallengeCatalog(db).create(payload)


@router.post("/generate-quiz", response_model=ChallengeResponse, status_code=status.HTTP_201_CREATED)
async def generate_quiz_challenge(
    request: GenerateQuizRequest,
    current_user: dict = Depends(require_organizer),
    generator: GeminiContentGenerator = Depends(get_content_generator),
    db: AsyncSession = Depends(get_db)
):
    """Generate quiz questions on a topic and store them as a new challenge."""
    questions = await generator.generate_quiz(request.topic, request.question_count)

    now = datetime.utcnow()
    payload = ChallengeCreate(
        event_id=request.event_id,
        title=request.title or f"Quiz: {request.topic}",
        description=request.description or f"Test your knowledge about {request.topic} with this quiz!",
        start_time=now,
        end_time=now + timedelta(days=settings.GENERATED_CHALLENGE_DAYS),
        details=QuizDetails(questions=questions),
        is_ai_generated=True,
        ai_metadata=AIMetadata(
            prompt=generator.quiz_prompt(request.topic, request.question_count),
            model=generator.model,
            generated_at=now
        )
    )
    return await ChallengeCatalog(db).create(payload)


@router.get("/{challenge_id}", response_model=ChallengeResponse)
async def get_challenge(challenge_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await ChallengeCatalog(db).get_by_id(challenge_id)


@router.post("/{challenge_id}/start", response_model=ProgressResponse)
async def start_challenge(
    challenge_id: uuid.UUID,
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Start a challenge. Starting again returns the existing progress."""
    challenge = await ChallengeCatalog(db).get_by_id(challenge_id)
    progress, created = await ProgressTracker(db).start(current_user["user_id"], challenge)

    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return progress


@router.post("/{challenge_id}/submit-quiz", response_model=QuizSubmissionResponse)
async def submit_quiz(
    challenge_id: uuid.UUID,
    submission: QuizSubmission,
    current_user: dict = Depends(get_current_user),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db)
):
    """Grade quiz answers and credit the points to the event ledger."""
    challenge = await ChallengeCatalog(db).get_by_id(challenge_id)

    outcome = await ProgressTracker(db, PointsEngine(db, cache)).submit_quiz(
        current_user["user_id"],
        challenge,
        submission.answers,
        username=current_user["username"]
    )

    return {
        "progress": outcome.progress,
        "points_earned": outcome.grade.points_earned,
        "correct_answers": outcome.grade.correct_answers,
        "total_questions": outcome.grade.total_questions
    }


@router.post("/{challenge_id}/checkin", response_model=CheckinResponse)
async def checkin_location(
    challenge_id: uuid.UUID,
    checkin: CheckinRequest,
    current_user: dict = Depends(get_current_user),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db)
):
    """Check in at a scavenger hunt location."""
    challenge = await ChallengeCatalog(db).get_by_id(challenge_id)

    outcome = await ProgressTracker(db, PointsEngine(db, cache)).checkin(
        current_user["user_id"],
        challenge,
        checkin.location_code,
        username=current_user["username"]
    )
    location = outcome.grade.location

    return {
        "progress": outcome.progress,
        "location_found": location.name,
        "points_earned": location.points,
        "message": f"You found {location.name}! +{location.points} points"
    }


@router.get("/{challenge_id}/progress", response_model=ProgressResponse)
async def get_challenge_progress(
    challenge_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ProgressTracker(db).get_progress(current_user["user_id"], challenge_id)
