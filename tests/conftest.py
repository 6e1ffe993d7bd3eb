"""
Conftest
"""

import os
from typing import AsyncGenerator

os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from transcript_desk.core.deps import get_db
from transcript_desk.main import app
from transcript_desk.models.base import Base
from transcript_desk.schemas.editor import EditorIdentity
from transcript_desk.schemas.segment import Segment, TranscriptPayload, Word
from transcript_desk.services.editor_service import EditorService
from transcript_desk.services.transcript_repository import TranscriptRepository

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

EPISODE = "episode-42"
LANG = "en"


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = async_sessionmaker(test_engine, expire_on_commit=False, autoflush=False)
    async with async_session() as session:
        yield session


@pytest.fixture
async def client(test_session) -> AsyncGenerator[AsyncClient, None]:
    # Override dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
async def editor(test_session) -> EditorIdentity:
    return await EditorService(test_session).login("alice@example.com", "Alice Example")


@pytest.fixture
async def other_editor(test_session) -> EditorIdentity:
    return await EditorService(test_session).login("bob@example.com", "Bob Builder")


def make_segment(segment_id: str, words: list[tuple[str, float, float]], speaker=None) -> Segment:
    return Segment(
        id=segment_id,
        start=words[0][1],
        end=words[-1][2],
        text=" ".join(w[0] for w in words),
        words=[Word(text=t, start=s, end=e) for t, s, e in words],
        speaker=speaker,
    )


@pytest.fixture
def sample_payload() -> TranscriptPayload:
    segments = [
        make_segment("s1", [("hello", 0.0, 2.0), ("world", 3.0, 5.0)], speaker="A"),
        make_segment("s2", [("how", 6.0, 6.5), ("are", 6.6, 7.0), ("you", 7.1, 7.5)], speaker="B"),
        make_segment("s3", [("fine", 8.0, 8.4), ("thanks", 8.5, 9.0)], speaker="A"),
    ]
    return TranscriptPayload(text="hello world how are you fine thanks", utterances=segments)


@pytest.fixture
async def seeded_transcript(test_session, sample_payload) -> TranscriptPayload:
    """Stored directly through the repository so no history entry exists yet"""
    await TranscriptRepository(test_session).write_payload(EPISODE, LANG, sample_payload, create=True)
    return sample_payload


@pytest.fixture
async def auth_headers(client, editor) -> dict[str, str]:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "alice@example.com", "name": "Alice Example"},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
