import sys
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from opvera import models  # noqa: E402,F401
from opvera.auth import create_access_token  # noqa: E402
from opvera.database import Base, create_db_engine, get_db  # noqa: E402
from opvera.main import app  # noqa: E402
from opvera.models.user import User, UserRole  # noqa: E402
from opvera.services.ai_client import AIClient, RateLimiter, get_ai_client  # noqa: E402


GRADING_REPLY = '{"score": 1, "feedback": "Good start.", "perQuestion": ["ok"], "suggestions": ["loops"]}'


class FakeClock:
    """Monotonic clock whose sleep() only advances time."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProvider:
    """
    Replies are consumed in order; the last one repeats. An exception instance
    is raised instead of returned; a float means "hang for that many seconds".
    """

    model = "fake-gemini"

    def __init__(self, *replies):
        self.replies = list(replies) or ["ok"]
        self.calls = []

    def generate(self, prompt, options, timeout):
        self.calls.append({"prompt": prompt, "options": options, "timeout": timeout})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, float):
            time.sleep(reply)
            return "too late"
        return reply


def make_ai_client(provider, *, timeout: float = 1.0, backoff_sleeps: list | None = None) -> AIClient:
    sleeps = backoff_sleeps if backoff_sleeps is not None else []
    return AIClient(
        provider,
        RateLimiter(0.0),
        timeout=timeout,
        max_attempts=3,
        backoff_base=1.0,
        sleep=sleeps.append,
    )


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def fake_provider():
    return FakeProvider(GRADING_REPLY)


@pytest.fixture
def ai_client(fake_provider):
    return make_ai_client(fake_provider)


@pytest.fixture
def client(db, ai_client):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_ai_client] = lambda: ai_client
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.STUDENT, user_id: str | None = None, **fields) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            id=user_id or f"user-{n:03d}",
            email=fields.pop("email", f"{role.value}{n}@example.com"),
            display_name=fields.pop("display_name", f"{role.value.title()} {n}"),
            role=role.value,
            **fields,
        )
        db.add(user)
        db.commit()
        return user

    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}
