import asyncio

import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError
from app.gamification.catalog import ChallengeCatalog
from app.gamification.points_engine import PointsEngine
from app.gamification.progress_tracker import ProgressTracker
from app.models.progress import ChallengeProgress, ProgressStatus
from tests.conftest import create_challenge, quiz_payload, scavenger_payload


@pytest.mark.asyncio
async def test_start_is_idempotent(db):
    challenge = await create_challenge(db, quiz_payload("event-1"))
    tracker = ProgressTracker(db)

    first, created = await tracker.start("user-1", challenge)
    second, created_again = await tracker.start("user-1", challenge)

    assert created is True
    assert created_again is False
    assert first.id == second.id
    assert second.status == ProgressStatus.IN_PROGRESS.value
    assert second.percent_complete == 0
    assert second.points_earned == 0

    count = await db.scalar(select(func.count()).select_from(ChallengeProgress))
    assert count == 1


@pytest.mark.asyncio
async def test_start_leaves_completed_progress_alone(db):
    challenge = await create_challenge(db, quiz_payload("event-1"))
    tracker = ProgressTracker(db)
    await tracker.submit_quiz("user-1", challenge, ["B", "B", "B"])

    progress, created = await tracker.start("user-1", challenge)

    assert created is False
    assert progress.status == ProgressStatus.COMPLETED.value
    assert progress.points_earned == 30


@pytest.mark.asyncio
async def test_submit_quiz_from_not_started(db):
    challenge = await create_challenge(db, quiz_payload("event-1", points=(5, 10, 15)))

    outcome = await ProgressTracker(db).submit_quiz("user-1", challenge, ["B", "A", "B"])

    progress = outcome.progress
    assert progress.status == ProgressStatus.COMPLETED.value
    assert progress.percent_complete == 100
    assert progress.points_earned == 20
    assert progress.completed_at is not None
    assert [a["is_correct"] for a in progress.answers] == [True, False, True]
    assert outcome.grade.correct_answers == 2
    assert outcome.points_delta == 20
    assert outcome.resubmitted is False


@pytest.mark.asyncio
async def test_resubmission_overwrites_and_reports_delta(db):
    challenge = await create_challenge(db, quiz_payload("event-1", points=(5, 10, 15)))
    tracker = ProgressTracker(db)
    await tracker.submit_quiz("user-1", challenge, ["B", "A", "A"])

    outcome = await tracker.submit_quiz("user-1", challenge, ["B", "B", "B"])

    assert outcome.resubmitted is True
    assert outcome.progress.points_earned == 30
    assert outcome.points_delta == 25
    assert all(a["is_correct"] for a in outcome.progress.answers)


@pytest.mark.asyncio
async def test_resubmission_can_be_disabled(db, monkeypatch):
    monkeypatch.setattr(settings, "QUIZ_ALLOW_RESUBMISSION", False)
    challenge = await create_challenge(db, quiz_payload("event-1"))
    tracker = ProgressTracker(db)
    await tracker.submit_quiz("user-1", challenge, ["B", "A", "A"])

    with pytest.raises(ConflictError):
        await tracker.submit_quiz("user-1", challenge, ["B", "B", "B"])

    progress = await tracker.get_progress("user-1", challenge.id)
    assert progress.points_earned == 5


@pytest.mark.asyncio
async def test_submit_quiz_to_scavenger_is_not_found(db):
    challenge = await create_challenge(db, scavenger_payload("event-1"))

    with pytest.raises(NotFoundError):
        await ProgressTracker(db).submit_quiz("user-1", challenge, ["B"])


@pytest.mark.asyncio
async def test_scavenger_hunt_completes(db):
    challenge = await create_challenge(db, scavenger_payload("event-1"))
    tracker = ProgressTracker(db)

    first = await tracker.checkin("user-1", challenge, "L1")
    assert first.progress.percent_complete == 50
    assert first.progress.status == ProgressStatus.IN_PROGRESS.value
    assert first.progress.completed_at is None

    second = await tracker.checkin("user-1", challenge, "L2")
    assert second.progress.percent_complete == 100
    assert second.progress.status == ProgressStatus.COMPLETED.value
    assert second.progress.points_earned == 30
    assert second.progress.points_earned <= challenge.total_points
    assert second.progress.completed_at is not None


@pytest.mark.asyncio
async def test_duplicate_checkin_conflicts(db):
    challenge = await create_challenge(db, scavenger_payload("event-1"))
    tracker = ProgressTracker(db)
    await tracker.checkin("user-1", challenge, "L1")

    with pytest.raises(ConflictError):
        await tracker.checkin("user-1", challenge, "L1")

    progress = await tracker.get_progress("user-1", challenge.id)
    assert progress.points_earned == 10
    assert len(progress.locations_found) == 1


@pytest.mark.asyncio
async def test_invalid_code_writes_nothing(db):
    challenge = await create_challenge(db, scavenger_payload("event-1"))

    with pytest.raises(NotFoundError):
        await ProgressTracker(db).checkin("user-1", challenge, "nope")

    count = await db.scalar(select(func.count()).select_from(ChallengeProgress))
    assert count == 0


@pytest.mark.asyncio
async def test_concurrent_duplicate_checkins_credit_once(session_factory):
    async with session_factory() as setup:
        challenge = await create_challenge(setup, scavenger_payload("event-1"))
        challenge_id = challenge.id

    async def attempt():
        async with session_factory() as session:
            loaded = await ChallengeCatalog(session).get_by_id(challenge_id)
            return await ProgressTracker(session).checkin("user-1", loaded, "L1")

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    conflicts = [r for r in results if isinstance(r, ConflictError)]
    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(conflicts) == 1
    assert len(successes) == 1

    async with session_factory() as session:
        progress = await ProgressTracker(session).get_progress("user-1", challenge_id)
    assert progress.points_earned == 10


@pytest.mark.asyncio
async def test_get_progress_projection_is_not_persisted(db):
    challenge = await create_challenge(db, quiz_payload("event-1"))

    progress = await ProgressTracker(db).get_progress("user-1", challenge.id)

    assert progress.id is None
    assert progress.status == ProgressStatus.NOT_STARTED
    assert progress.percent_complete == 0
    count = await db.scalar(select(func.count()).select_from(ChallengeProgress))
    assert count == 0


@pytest.mark.asyncio
async def test_list_for_user_joins_challenges(db):
    quiz = await create_challenge(db, quiz_payload("event-1"))
    hunt = await create_challenge(db, scavenger_payload("event-1"))
    tracker = ProgressTracker(db)
    await tracker.start("user-1", quiz)
    await tracker.checkin("user-1", hunt, "L2")
    await tracker.start("user-2", quiz)

    records = await tracker.list_for_user("user-1")

    assert [r.challenge.title for r in records] == ["Campus Trivia", "Campus Hunt"]
    assert records[1].points_earned == 20


@pytest.mark.asyncio
async def test_quiz_and_checkins_credit_the_event_ledger(db):
    quiz = await create_challenge(db, quiz_payload("event-1", points=(5, 10, 15)))
    hunt = await create_challenge(db, scavenger_payload("event-1"))
    tracker = ProgressTracker(db)

    await tracker.submit_quiz("user-1", quiz, ["B", "A", "B"], username="ada")
    await tracker.submit_quiz("user-1", quiz, ["B", "B", "B"], username="ada")
    await tracker.checkin("user-1", hunt, "L2", username="ada")

    ledger = await PointsEngine(db).get_points("user-1", "event-1")
    assert ledger.points == 30 + 20
    assert ledger.username == "ada"
    assert [a.description for a in ledger.activities] == [
        "Completed quiz: Campus Trivia",
        "Re-graded quiz: Campus Trivia",
        "Found location in scavenger hunt: Quad",
    ]


@pytest.mark.asyncio
async def test_unchanged_resubmission_writes_no_activity(db):
    challenge = await create_challenge(db, quiz_payload("event-1"))
    tracker = ProgressTracker(db)
    await tracker.submit_quiz("user-1", challenge, ["B", "A", "A"])

    outcome = await tracker.submit_quiz("user-1", challenge, ["B", "C", "C"])

    assert outcome.points_delta == 0
    ledger = await PointsEngine(db).get_points("user-1", "event-1")
    assert len(ledger.activities) == 1


def fail_first_credit(monkeypatch):
    credit = PointsEngine.credit
    calls = []

    async def flaky_credit(self, *args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise RuntimeError("ledger unavailable")
        return await credit(self, *args, **kwargs)

    monkeypatch.setattr(PointsEngine, "credit", flaky_credit)


@pytest.mark.asyncio
async def test_failed_quiz_credit_is_recovered_by_retry(db, monkeypatch):
    challenge = await create_challenge(db, quiz_payload("event-1", points=(5, 10, 15)))
    challenge_id = challenge.id
    fail_first_credit(monkeypatch)
    tracker = ProgressTracker(db)

    with pytest.raises(RuntimeError):
        await tracker.submit_quiz("user-1", challenge, ["B", "B", "B"])

    progress = await tracker.get_progress("user-1", challenge_id)
    assert progress.status != ProgressStatus.COMPLETED

    challenge = await ChallengeCatalog(db).get_by_id(challenge_id)
    outcome = await tracker.submit_quiz("user-1", challenge, ["B", "B", "B"])

    assert outcome.resubmitted is False
    assert outcome.progress.points_earned == 30
    ledger = await PointsEngine(db).get_points("user-1", "event-1")
    assert ledger.points == 30


@pytest.mark.asyncio
async def test_failed_checkin_credit_is_recovered_by_retry(db, monkeypatch):
    challenge = await create_challenge(db, scavenger_payload("event-1"))
    challenge_id = challenge.id
    fail_first_credit(monkeypatch)
    tracker = ProgressTracker(db)

    with pytest.raises(RuntimeError):
        await tracker.checkin("user-1", challenge, "L1")

    challenge = await ChallengeCatalog(db).get_by_id(challenge_id)
    outcome = await tracker.checkin("user-1", challenge, "L1")

    assert outcome.progress.points_earned == 10
    assert len(outcome.progress.locations_found) == 1
    ledger = await PointsEngine(db).get_points("user-1", "event-1")
    assert ledger.points == 10
