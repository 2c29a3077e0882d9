"""Challenge definitions."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Column, String, Integer, DateTime, Boolean, Text, JSON, Index, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class ChallengeKind(str, Enum):
    """Kinds of event challenges."""
    QUIZ = "quiz"
    SCAVENGER = "scavenger"
    SOCIAL = "social"
    NETWORKING = "networking"
    SPONSOR = "sponsor"
    FEEDBACK = "feedback"


class Challenge(Base):
    """An engagement task tied to an event.

    ``details`` holds the kind-specific payload (quiz questions, scavenger
    locations, ...) as an ordered JSON document owned by the challenge.
    """
    __tablename__ = "challenges"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    kind = Column(String, nullable=False)
    total_points = Column(Integer, nullable=False, default=10)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    details = Column(JSON, nullable=False)
    is_ai_generated = Column(Boolean, nullable=False, default=False)
    ai_metadata = Column(JSON)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    progress_records = relationship("ChallengeProgress", back_populates="challenge")

    __table_args__ = (
        Index("ix_challenge_event_window", "event_id", "is_active", "start_time", "end_time"),
    )

    def is_visible(self, now: datetime) -> bool:
        return bool(self.is_active) and self.start_time <= now <= self.end_time
