from datetime import datetime, timedelta

import pytest

from app.core.errors import NotFoundError
from app.gamification.scoring import grade_checkin, grade_quiz
from app.models.challenge import Challenge
from app.schemas.challenge import NetworkingDetails
from tests.conftest import quiz_payload, scavenger_payload


def build(payload):
    """Transient challenge, never persisted."""
    return Challenge(
        event_id=payload.event_id,
        title=payload.title,
        kind=payload.kind.value,
        total_points=payload.total_points,
        start_time=payload.start_time,
        end_time=payload.end_time,
        details=payload.details.model_dump(mode="json"),
    )


def test_quiz_partial_credit():
    challenge = build(quiz_payload("event-1", points=(5, 10, 15), correct="B"))

    grade = grade_quiz(challenge, ["B", "A", "B"])

    assert grade.points_earned == 20
    assert grade.correct_answers == 2
    assert grade.total_questions == 3
    assert [r.is_correct for r in grade.results] == [True, False, True]
    assert [r.points_earned for r in grade.results] == [5, 0, 15]


def test_quiz_all_correct_earns_every_point():
    challenge = build(quiz_payload("event-1", points=(5, 10, 15)))

    grade = grade_quiz(challenge, ["B", "B", "B"])

    assert grade.points_earned == 30 == challenge.total_points


def test_quiz_ignores_extra_answers():
    challenge = build(quiz_payload("event-1", points=(5, 10)))

    grade = grade_quiz(challenge, ["B", "B", "B", "B"])

    assert len(grade.results) == 2
    assert grade.points_earned == 15


def test_quiz_missing_answers_are_incorrect():
    challenge = build(quiz_payload("event-1", points=(5, 10, 15)))

    grade = grade_quiz(challenge, ["B"])

    assert grade.correct_answers == 1
    assert grade.results[1].user_answer is None
    assert grade.results[2].is_correct is False
    assert grade.points_earned == 5


def test_quiz_comparison_is_exact():
    challenge = build(quiz_payload("event-1", points=(5,), correct="Paris"))

    assert grade_quiz(challenge, ["paris"]).points_earned == 0
    assert grade_quiz(challenge, ["Paris "]).points_earned == 0
    assert grade_quiz(challenge, ["Paris"]).points_earned == 5


def test_grade_quiz_rejects_other_kinds():
    with pytest.raises(NotFoundError):
        grade_quiz(build(scavenger_payload("event-1")), ["B"])


def test_checkin_matches_code():
    challenge = build(scavenger_payload("event-1"))

    grade = grade_checkin(challenge, "L2")

    assert grade.location_index == 1
    assert grade.location.name == "Quad"
    assert grade.points_earned == 20
    assert grade.total_locations == 2


def test_checkin_unknown_code():
    challenge = build(scavenger_payload("event-1"))

    with pytest.raises(NotFoundError):
        grade_checkin(challenge, "l1")


def test_checkin_rejects_other_kinds():
    now = datetime.utcnow()
    networking = Challenge(
        event_id="event-1",
        title="Meet five people",
        kind="networking",
        total_points=10,
        start_time=now,
        end_time=now + timedelta(hours=1),
        details=NetworkingDetails(target_connections=5).model_dump(mode="json"),
    )

    with pytest.raises(NotFoundError):
        grade_checkin(networking, "L1")
