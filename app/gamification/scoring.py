"""Grading for quiz submissions and scavenger check-ins.

Everything here is pure: functions read a challenge definition and the user's
input and return a result. Persisting it is the progress tracker's job.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from app.core.errors import NotFoundError
from app.models.challenge import Challenge, ChallengeKind
from app.schemas.challenge import (
    QuizDetails, ScavengerDetails, ScavengerLocation, challenge_details_adapter
)


@dataclass(frozen=True)
class QuestionGrade:
    question_index: int
    user_answer: Optional[str]
    is_correct: bool
    points_earned: int

    def as_record(self) -> dict:
        return {
            "question_index": self.question_index,
            "user_answer": self.user_answer,
            "is_correct": self.is_correct,
            "points_earned": self.points_earned,
        }


@dataclass(frozen=True)
class QuizGrade:
    results: List[QuestionGrade]
    points_earned: int
    correct_answers: int
    total_questions: int


@dataclass(frozen=True)
class CheckinGrade:
    location_index: int
    location: ScavengerLocation
    total_locations: int

    @property
    def points_earned(self) -> int:
        return self.location.points


def quiz_details(challenge: Challenge) -> QuizDetails:
    details = challenge_details_adapter.validate_python(challenge.details)
    if challenge.kind != ChallengeKind.QUIZ.value or not isinstance(details, QuizDetails):
        raise NotFoundError("Quiz challenge not found")
    return details


def scavenger_details(challenge: Challenge) -> ScavengerDetails:
    details = challenge_details_adapter.validate_python(challenge.details)
    if challenge.kind != ChallengeKind.SCAVENGER.value or not isinstance(details, ScavengerDetails):
        raise NotFoundError("Scavenger hunt challenge not found")
    return details


def grade_quiz(challenge: Challenge, answers: Sequence[str]) -> QuizGrade:
    """Grade answers positionally against the quiz questions.

    Answers beyond the last question are ignored; a question without an answer
    counts as incorrect.
    """
    questions = quiz_details(challenge).questions

    results = []
    for index, question in enumerate(questions):
        answer = answers[index] if index < len(answers) else None
        is_correct = answer is not None and answer == question.correct_answer
        results.append(QuestionGrade(
            question_index=index,
            user_answer=answer,
            is_correct=is_correct,
            points_earned=question.points if is_correct else 0
        ))

    return QuizGrade(
        results=results,
        points_earned=sum(r.points_earned for r in results),
        correct_answers=sum(1 for r in results if r.is_correct),
        total_questions=len(questions)
    )


def grade_checkin(challenge: Challenge, code: str) -> CheckinGrade:
    """Find the location whose code matches exactly."""
    locations = scavenger_details(challenge).locations

    for index, location in enumerate(locations):
        if location.code == code:
            return CheckinGrade(location_index=index, location=location, total_locations=len(locations))

    raise NotFoundError("Invalid location code")
