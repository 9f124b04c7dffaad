"""
Pytest configuration and shared fixtures for tests
"""

import pytest
from contextlib import contextmanager
from datetime import datetime, timezone
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from mentorship import db_models  # noqa: F401
from mentorship.config import MentorshipConfig
from mentorship.models import SendResult

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(name="db_engine")
def db_engine_fixture():
    """Create in-memory SQLite database engine for testing"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Keep single connection for in-memory DB
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="db_session")
def db_session_fixture(db_engine):
    """Create database session for testing"""
    with Session(db_engine) as session:
        yield session
        session.rollback()  # Rollback any uncommitted changes after test


@pytest.fixture(name="session_factory")
def session_factory_fixture(db_session):
    """Stand-in for database.get_session that reuses the test session"""

    @contextmanager
    def factory():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    return factory


@pytest.fixture(name="config")
def config_fixture():
    """Configuration isolated from the environment and any .env file"""
    return MentorshipConfig(
        _env_file=None,
        resend_api_key="re_test",
        email_from="mentors@example.com",
        web_app_url="https://app.example.com",
        notification_cooldown_days=7,
        send_timeout_seconds=0.5,
        send_concurrency=2,
    )


class FakeMailer:
    """Records sends; addresses listed in failing get a provider error"""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def send(self, to, content):
        self.sent.append((to, content))
        if to in self.failing:
            return SendResult(email=to, ok=False, error="rejected")
        return SendResult(email=to, ok=True)


@pytest.fixture(name="mailer")
def mailer_fixture():
    return FakeMailer()


@pytest.fixture(name="make_mailer")
def make_mailer_fixture():
    """Build a FakeMailer with a chosen set of failing addresses"""
    return FakeMailer
