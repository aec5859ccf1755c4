"""Shared test fixtures."""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from match_pipeline.api.app import app
from match_pipeline.api.deps import get_channel, get_pipeline_config, get_sessions
from match_pipeline.config.pipeline import PipelineConfig
from match_pipeline.errors import DeliveryFailure
from match_pipeline.models.base import Base
from match_pipeline.models.profile import Profile


class RecordingChannel:
    """Delivery channel double that records sends and can fail or stall."""

    def __init__(self, fail_for: tuple[str, ...] = (), delay: float = 0.0) -> None:
        self.sent: list[dict] = []
        self.attempts = 0
        self.fail_for = set(fail_for)
        self.delay = delay
        self.closed = False

    async def send(self, recipient_contact: str, subject: str, body: str) -> None:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if recipient_contact in self.fail_for:
            raise DeliveryFailure(f"mailbox unavailable: {recipient_contact}")
        self.sent.append({"to": recipient_contact, "subject": subject, "body": body})

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
async def test_engine():
    """Create an async SQLite in-memory engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
async def profiles(test_session_factory):
    """Seed the profile mirror.

    - alice: basic tier, no guardian
    - bilal: basic tier, no guardian
    - fatima: basic tier, guardian approval required (guardian omar)
    - maryam: basic tier, guardian approval required (guardian yusuf)
    - zaid: premium tier
    - digest-user: prefers a daily digest
    """
    async with test_session_factory() as session, session.begin():
        session.add_all(
            [
                Profile(id="alice", display_name="Alice", email="alice@example.com"),
                Profile(id="bilal", display_name="Bilal", email="bilal@example.com"),
                Profile(
                    id="fatima",
                    display_name="Fatima",
                    email="fatima@example.com",
                    wali_required=True,
                    guardian_user_id="omar",
                    guardian_contact="omar@example.com",
                ),
                Profile(
                    id="maryam",
                    display_name="Maryam",
                    email="maryam@example.com",
                    wali_required=True,
                    guardian_user_id="yusuf",
                    guardian_contact="yusuf@example.com",
                ),
                Profile(
                    id="zaid",
                    display_name="Zaid",
                    email="zaid@example.com",
                    subscription_tier="premium",
                ),
                Profile(
                    id="digest-user",
                    display_name="Digest User",
                    email="digest@example.com",
                    notification_frequency="daily",
                ),
            ]
        )


@pytest.fixture
async def api_client(test_session_factory, pipeline_config, channel):
    """Async HTTP client hitting the FastAPI app with the test DB."""
    app.dependency_overrides[get_sessions] = lambda: test_session_factory
    app.dependency_overrides[get_pipeline_config] = lambda: pipeline_config
    app.dependency_overrides[get_channel] = lambda: channel
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_channel():
    """Factory for channels that fail for given contacts or stall on send."""
    return RecordingChannel
