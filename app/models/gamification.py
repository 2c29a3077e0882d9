"""Gamification models."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Column, String, Integer, DateTime, Text, UniqueConstraint, Index, JSON, Uuid

from app.core.database import Base


class ActivityKind(str, Enum):
    """Kinds of point-earning activity recorded in a user's ledger."""
    ATTENDANCE = "attendance"
    FEEDBACK = "feedback"
    NETWORKING = "networking"
    CHALLENGE = "challenge"
    SOCIAL = "social"
    SPONSOR = "sponsor"
    # Reserved for achievement bonuses
    ACHIEVEMENT = "achievement"


class AchievementCategory(str, Enum):
    """Achievement categories, each with a fixed unlock threshold."""
    NETWORKING = "networking"
    ATTENDANCE = "attendance"
    ENGAGEMENT = "engagement"
    FEEDBACK = "feedback"
    SOCIAL = "social"


class UserPoints(Base):
    """Points ledger for one user within one event.

    ``activities`` is the append-only log; ``points`` always equals the sum of
    its entries' points.
    """
    __tablename__ = "user_points"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    event_id = Column(String, nullable=False, index=True)
    username = Column(String)
    points = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    activities = Column(JSON, nullable=False, default=list)
    achievements = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_user_points_user_event"),
        Index("ix_user_points_event_rank", "event_id", "points"),
    )

    def owned_achievement_ids(self) -> set:
        return {entry["achievement_id"] for entry in self.achievements or []}


class Achievement(Base):
    """Achievement definitions."""
    __tablename__ = "achievements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    image = Column(String)
    points = Column(Integer, nullable=False, default=10)  # bonus on unlock
    criteria = Column(Text)  # human-readable only; thresholds are fixed per category
    category = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
