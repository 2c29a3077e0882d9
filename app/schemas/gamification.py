"""Points, achievement and leaderboard schemas."""

from datetime import datetime
from typing import Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from app.gamification.levels import level_for, points_to_next_level
from app.models.gamification import ActivityKind, AchievementCategory


class ActivityEntry(BaseModel):
    kind: ActivityKind
    description: str = ""
    points: int
    timestamp: datetime


class OwnedAchievement(BaseModel):
    achievement_id: uuid.UUID
    date_earned: datetime


class UserPointsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    event_id: str
    username: Optional[str] = None
    points: int = 0
    level: int = 1
    achievements: List[OwnedAchievement] = Field(default_factory=list)
    activities: List[ActivityEntry] = Field(default_factory=list)

    @computed_field
    @property
    def points_to_next_level(self) -> int:
        return points_to_next_level(self.points)

    @classmethod
    def empty(cls, user_id: str, event_id: str) -> "UserPointsResponse":
        return cls(user_id=user_id, event_id=event_id, points=0, level=level_for(0))


class AddPointsRequest(BaseModel):
    event_id: str = Field(min_length=1)
    points: int = Field(gt=0)
    activity_type: ActivityKind
    description: str = ""

    @field_validator("activity_type")
    def not_reserved(cls, v):
        if v == ActivityKind.ACHIEVEMENT:
            raise ValueError("achievement activities are recorded by the engine only")
        return v


class AchievementCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = Field(min_length=1)
    image: Optional[str] = None
    points: int = Field(default=10, ge=0)
    criteria: Optional[str] = None
    category: AchievementCategory


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str
    image: Optional[str] = None
    points: int
    criteria: Optional[str] = None
    category: AchievementCategory
    created_at: datetime


class GenerateAchievementsRequest(BaseModel):
    event_name: str = Field(min_length=1)
    event_description: Optional[str] = None
    category: AchievementCategory
    count: int = Field(default=3, ge=1, le=10)


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    username: Optional[str] = None
    points: int
    level: int


class LeaderboardStats(BaseModel):
    event_id: str
    participants: int
    total_points: int
    mean_points: float
    median_points: float
    p90_points: float
    max_points: int
    level_distribution: Dict[int, int] = Field(default_factory=dict)
