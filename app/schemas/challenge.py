"""Challenge and progress schemas."""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from app.core.config import settings
from app.models.challenge import ChallengeKind
from app.models.progress import ProgressStatus


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize aware datetimes to naive UTC, the storage convention."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class QuizQuestion(BaseModel):
    question: str = Field(min_length=1)
    options: List[str] = Field(default_factory=list)
    correct_answer: str
    points: int = Field(default=5, ge=0)


class ScavengerLocation(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    hint: Optional[str] = None
    code: str = Field(min_length=1)
    points: int = Field(default=10, ge=0)


class QuizDetails(BaseModel):
    kind: Literal["quiz"] = "quiz"
    questions: List[QuizQuestion] = Field(min_length=1)

    def item_points(self) -> int:
        return sum(q.points for q in self.questions)


class ScavengerDetails(BaseModel):
    kind: Literal["scavenger"] = "scavenger"
    locations: List[ScavengerLocation] = Field(min_length=1)

    @field_validator("locations")
    def codes_unique(cls, v):
        codes = [loc.code for loc in v]
        if len(codes) != len(set(codes)):
            raise ValueError("location codes must be unique within a challenge")
        return v

    def item_points(self) -> int:
        return sum(loc.points for loc in self.locations)


class NetworkingDetails(BaseModel):
    kind: Literal["networking"] = "networking"
    target_connections: Optional[int] = Field(default=None, ge=1)


class SponsorDetails(BaseModel):
    kind: Literal["sponsor"] = "sponsor"
    sponsor_id: Optional[str] = None


class SocialDetails(BaseModel):
    kind: Literal["social"] = "social"


class FeedbackDetails(BaseModel):
    kind: Literal["feedback"] = "feedback"


ChallengeDetails = Annotated[
    Union[QuizDetails, ScavengerDetails, NetworkingDetails, SponsorDetails, SocialDetails, FeedbackDetails],
    Field(discriminator="kind"),
]

challenge_details_adapter = TypeAdapter(ChallengeDetails)


class AIMetadata(BaseModel):
    prompt: str
    model: str
    generated_at: datetime


class ChallengeCreate(BaseModel):
    """Challenge payload, authored by an organizer or produced by the generator."""
    event_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    total_points: Optional[int] = Field(default=None, ge=0)
    start_time: datetime
    end_time: datetime
    is_active: bool = True
    details: ChallengeDetails
    is_ai_generated: bool = False
    ai_metadata: Optional[AIMetadata] = None

    @field_validator("start_time", "end_time")
    def normalize_times(cls, v):
        return to_naive_utc(v)

    @model_validator(mode="after")
    def check_window_and_points(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must not precede start_time")

        if isinstance(self.details, (QuizDetails, ScavengerDetails)):
            item_points = self.details.item_points()
            if self.total_points is None:
                self.total_points = item_points
            elif self.total_points < item_points:
                raise ValueError(
                    f"total_points ({self.total_points}) is lower than the sum of item points ({item_points})"
                )
        elif self.total_points is None:
            self.total_points = settings.DEFAULT_CHALLENGE_POINTS
        return self

    @property
    def kind(self) -> ChallengeKind:
        return ChallengeKind(self.details.kind)


class ChallengeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_id: str
    title: str
    description: str
    kind: ChallengeKind
    total_points: int
    start_time: datetime
    end_time: datetime
    is_active: bool
    details: ChallengeDetails
    is_ai_generated: bool = False
    ai_metadata: Optional[AIMetadata] = None
    created_at: datetime


class QuizAnswerResult(BaseModel):
    question_index: int
    user_answer: Optional[str] = None
    is_correct: bool
    points_earned: int


class LocationFind(BaseModel):
    location_index: int
    found_at: datetime
    points_earned: int


class ProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[uuid.UUID] = None
    user_id: str
    challenge_id: uuid.UUID
    status: ProgressStatus
    percent_complete: float
    points_earned: int
    answers: List[QuizAnswerResult] = Field(default_factory=list)
    locations_found: List[LocationFind] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def not_started(cls, user_id: str, challenge_id: uuid.UUID) -> "ProgressResponse":
        """Zero-value projection for a user who has not interacted yet."""
        return cls(
            user_id=user_id,
            challenge_id=challenge_id,
            status=ProgressStatus.NOT_STARTED,
            percent_complete=0.0,
            points_earned=0,
        )


class ProgressWithChallenge(ProgressResponse):
    challenge: ChallengeResponse


class QuizSubmission(BaseModel):
    answers: List[str]


class QuizSubmissionResponse(BaseModel):
    progress: ProgressResponse
    points_earned: int
    correct_answers: int
    total_questions: int


class CheckinRequest(BaseModel):
    location_code: str = Field(min_length=1)


class CheckinResponse(BaseModel):
    progress: ProgressResponse
    location_found: str
    points_earned: int
    message: str


class GenerateQuizRequest(BaseModel):
    event_id: str = Field(min_length=1)
    topic: str = Field(min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    question_count: int = Field(default=5, ge=1, le=20)
