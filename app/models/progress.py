"""Challenge progress models."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, UniqueConstraint, Index, JSON, Uuid
from sqlalchemy.orm import relationship

from app.core.database import Base


class ProgressStatus(str, Enum):
    """Progress status for challenges. Only ever moves forward."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ChallengeProgress(Base):
    """A user's state and partial results for one challenge."""
    __tablename__ = "challenge_progress"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    challenge_id = Column(Uuid, ForeignKey("challenges.id"), nullable=False)
    status = Column(String, nullable=False, default=ProgressStatus.NOT_STARTED.value)
    percent_complete = Column(Float, nullable=False, default=0.0)
    points_earned = Column(Integer, nullable=False, default=0)
    answers = Column(JSON, nullable=False, default=list)  # quiz: one entry per question
    locations_found = Column(JSON, nullable=False, default=list)  # scavenger discoveries
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    challenge = relationship("Challenge", back_populates="progress_records")

    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_progress_user_challenge"),
        Index("ix_progress_status", "status"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED.value
