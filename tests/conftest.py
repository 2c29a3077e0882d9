import os
import tempfile
import uuid
from datetime import datetime, timedelta

# Settings are read at import time; configure before the app is imported.
_TEST_DIR = tempfile.mkdtemp(prefix="gamification-tests-")
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/api.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ENABLE_METRICS", "false")
os.environ.setdefault("LOG_FORMAT", "plain")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ["GEMINI_API_KEY"] = ""

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from app.core.database import Base, build_sessionmaker  # noqa: E402
from app.core.dependencies import create_access_token  # noqa: E402
from app.gamification.catalog import ChallengeCatalog  # noqa: E402
from app.main import app  # noqa: E402
from app.schemas.challenge import (  # noqa: E402
    ChallengeCreate, QuizDetails, QuizQuestion, ScavengerDetails, ScavengerLocation
)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/engine.db", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_sessionmaker(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="session")
def client():
    with TestClient(app) as c:
        yield c


def auth_headers(user_id=None, username=None, roles=None):
    claims = {"sub": user_id or f"user-{uuid.uuid4().hex[:8]}"}
    if username:
        claims["username"] = username
    if roles:
        claims["roles"] = roles
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


def unique_event_id():
    return f"event-{uuid.uuid4().hex[:12]}"


def quiz_payload(event_id, points=(5, 10, 15), correct="B", **overrides):
    now = datetime.utcnow()
    payload = ChallengeCreate(
        event_id=event_id,
        title="Campus Trivia",
        description="How well do you know the campus?",
        start_time=now - timedelta(hours=1),
        end_time=now + timedelta(days=1),
        details=QuizDetails(questions=[
            QuizQuestion(question=f"Question {i + 1}", options=["A", "B", "C", "D"], correct_answer=correct, points=p)
            for i, p in enumerate(points)
        ]),
    )
    return payload.model_copy(update=overrides)


def scavenger_payload(event_id, locations=(("Library", "L1", 10), ("Quad", "L2", 20)), **overrides):
    now = datetime.utcnow()
    payload = ChallengeCreate(
        event_id=event_id,
        title="Campus Hunt",
        start_time=now - timedelta(hours=1),
        end_time=now + timedelta(days=1),
        details=ScavengerDetails(locations=[
            ScavengerLocation(name=name, code=code, hint=f"Near the {name.lower()}", points=points)
            for name, code, points in locations
        ]),
    )
    return payload.model_copy(update=overrides)


async def create_challenge(db, payload):
    return await ChallengeCatalog(db).create(payload)
