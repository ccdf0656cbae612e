"""
Unit test configuration and fixtures.

Unit tests validate isolated components without external dependencies.
These tests should be fast and not require services to be running.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from httpx import AsyncClient, ASGITransport

from scarlett.adaptive.fsrs import FSRSAlgorithm, FSRSParameters
from scarlett.adaptive.selection import QuestionSelector
from scarlett.schemas.progress import Question
from scarlett.services.progress_store import InMemoryProgressStore
from scarlett.services.question_bank import InMemoryQuestionBank
from scarlett.services.session_store import InMemorySessionStore
from scarlett.services.study_session import StudySessionService

# Import shared fixtures
from tests.fixtures import create_question_pool


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.lindex = AsyncMock(return_value=None)
    redis.lpush = AsyncMock(return_value=1)
    redis.ltrim = AsyncMock(return_value=True)
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_pipeline(mock_redis):
    """Transaction pipeline returned by mock_redis.pipeline()."""
    pipe = MagicMock()
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)
    pipe.watch = AsyncMock(return_value=True)
    pipe.get = AsyncMock(return_value=None)
    pipe.multi = MagicMock()
    pipe.set = MagicMock()
    pipe.execute = AsyncMock(return_value=[True])
    mock_redis.pipeline = MagicMock(return_value=pipe)
    return pipe


# ============================================================================
# Scheduling Core
# ============================================================================

@pytest.fixture
def question_pool():
    """Thirty questions q1..q30 as raw dicts."""
    return create_question_pool(30)


@pytest.fixture
def algorithm():
    """FSRS with fuzz enabled (deterministic per review time)."""
    return FSRSAlgorithm()


@pytest.fixture
def unfuzzed_algorithm():
    """FSRS with fuzz disabled, for exact interval checks."""
    return FSRSAlgorithm(FSRSParameters(enable_fuzz=False))


@pytest.fixture
def selector():
    return QuestionSelector()


# ============================================================================
# Services
# ============================================================================

@pytest.fixture
def question_bank(question_pool):
    bank = InMemoryQuestionBank()
    bank.add_questions("song_1", "en", [Question.model_validate(q) for q in question_pool])
    return bank


@pytest.fixture
def progress_store():
    return InMemoryProgressStore()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def study_service(question_bank, progress_store, session_store, unfuzzed_algorithm):
    """Study service over in-memory stores."""
    return StudySessionService(
        question_bank=question_bank,
        progress_store=progress_store,
        session_store=session_store,
        algorithm=unfuzzed_algorithm,
    )


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
async def client(study_service):
    """ASGI client with the study service swapped for the in-memory one."""
    from scarlett.main import app
    from scarlett.routers.study import get_study_service

    app.dependency_overrides[get_study_service] = lambda: study_service
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides = {}
