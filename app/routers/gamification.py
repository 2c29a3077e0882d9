"""Gamification endpoints: points ledger, achievements and leaderboard."""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_cache, get_content_generator, get_current_user, require_organizer
from app.gamification.achievement_engine import AchievementEngine
from app.gamification.leaderboard import LeaderboardAggregator
from app.gamification.points_engine import PointsEngine
from app.generation.content_generator import GeminiContentGenerator
from app.schemas.gamification import (
    AchievementCreate, AchievementResponse, AddPointsRequest, GenerateAchievementsRequest,
    LeaderboardEntry, LeaderboardStats, UserPointsResponse
)

logger = structlog.get_logger()
router = APIRouter()


@router.get("/leaderboard/{event_id}", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    event_id: str,
    limit: Optional[int] = Query(None, ge=1, le=settings.LEADERBOARD_SIZE),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db)
):
    """Get the points leaderboard of an event."""
    return await LeaderboardAggregator(db, cache).get_leaderboard(event_id, limit)


@router.get("/leaderboard/{event_id}/stats", response_model=LeaderboardStats)
async def get_leaderboard_stats(event_id: str, db: AsyncSession = Depends(get_db)):
    """Distribution of points among an event's participants."""
    return await LeaderboardAggregator(db).get_stats(event_id)


@router.get("/points/{event_id}", response_model=UserPointsResponse)
async def get_user_points(
    event_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the caller's points for an event."""
    return await PointsEngine(db).get_points(current_user["user_id"], event_id)


@router.post("/points", response_model=UserPointsResponse)
async def add_points(
    request: AddPointsRequest,
    current_user: dict = Depends(get_current_user),
    cache=Depends(get_cache),
    db: AsyncSession = Depends(get_db)
):
    """Record an activity for the caller and award its points."""
    user_points = await PointsEngine(db, cache).add_points(
        current_user["user_id"],
        request.event_id,
        request.points,
        request.activity_type,
        request.description,
        username=current_user["username"]
    )
    return UserPointsResponse.model_validate(user_points)


@router.get("/achievements", response_model=List[AchievementResponse])
async def list_achievements(db: AsyncSession = Depends(get_db)):
    """Get all achievement definitions."""
    return await AchievementEngine(db).list_achievements()


@router.post("/achievements", response_model=AchievementResponse, status_code=status.HTTP_201_CREATED)
async def create_achievement(
    achievement: AchievementCreate,
    current_user: dict = Depends(require_organizer),
    db: AsyncSession = Depends(get_db)
):
    """Define a new achievement."""
    return await AchievementEngine(db).create_achievement(achievement)


@router.post("/achievements/generate", response_model=List[AchievementCreate])
async def generate_achievements(
    request: GenerateAchievementsRequest,
    current_user: dict = Depends(require_organizer),
    generator: GeminiContentGenerator = Depends(get_content_generator)
):
    """Propose achievements for an event. Nothing is stored."""
    return await generator.generate_achievements(
        request.event_name,
        request.category,
        event_description=request.event_description,
        count=request.count
    )
