"""Data models for the Gamification Service."""

from app.models.challenge import Challenge, ChallengeKind
from app.models.progress import ChallengeProgress, ProgressStatus
from app.models.gamification import UserPoints, Achievement, ActivityKind, AchievementCategory

__all__ = [
    "Challenge",
    "ChallengeKind",
    "ChallengeProgress",
    "ProgressStatus",
    "UserPoints",
    "Achievement",
    "ActivityKind",
    "AchievementCategory"
]
