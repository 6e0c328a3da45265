"""Pytest configuration for tests."""
# ruff: noqa: E402  # Module imports after sys.path manipulation

import sys
from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from novelty_agents.core.retry import RetryPolicy
from novelty_agents.database.models import Base
from novelty_agents.models.novelty import CompletionResult, NoveltyCheckRequest

# In-memory SQLite shared across sessions of one test through a single connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async engine for tests."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def async_db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# Invention Fixtures


@pytest.fixture
def solar_charger_request() -> NoveltyCheckRequest:
    """Invention used across agent and pipeline tests."""
    return NoveltyCheckRequest(
        invention_name="Foldable Solar Charger",
        description="A foldable solar panel that charges phones and tablets while hiking",
        problem_statement="Hikers run out of battery far from power outlets",
        target_audience="Outdoor enthusiasts",
        key_features=["Foldable photovoltaic panels", "USB-C output", "Water resistant casing"],
    )


# AI Gateway Fixtures


def _completion(text: str, provider: str = "anthropic") -> CompletionResult:
    model = "claude-3-haiku-20240307" if provider == "anthropic" else "gpt-4o-mini"
    return CompletionResult(text=text, provider=provider, model=model)


@pytest.fixture
def completion():
    """Factory building a gateway reply from raw model text."""
    return _completion


@pytest.fixture
def mock_gateway() -> MagicMock:
    """AI gateway double with both providers available."""
    gateway = MagicMock()
    gateway.available_providers.return_value = ["anthropic", "openai"]
    gateway.create_completion = AsyncMock(return_value=_completion("{}"))
    return gateway


@pytest.fixture
def no_retry_policy() -> RetryPolicy:
    """Single-attempt policy so failures surface immediately."""
    return RetryPolicy(max_attempts=1, initial_delay=0.0, max_delay=0.0)
