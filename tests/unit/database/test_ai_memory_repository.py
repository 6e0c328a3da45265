"""Unit tests for AIMemoryRepository."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from novelty_agents.agents.aggregator import aggregate
from novelty_agents.database.models import AIMemory
from novelty_agents.database.repositories.ai_memory_repository import AIMemoryRepository
from novelty_agents.models.novelty import (
    AgentType,
    ChannelSuccess,
    GraduatedTruthScores,
    NoveltyCheckResponse,
    NoveltyResult,
)


def _response() -> NoveltyCheckResponse:
    outcomes = [
        ChannelSuccess(
            result=NoveltyResult(
                agent_type=agent_type,
                is_novel=True,
                confidence=0.6,
                truth_scores=GraduatedTruthScores(completeness=0.4),
            )
        )
        for agent_type in (AgentType.WEB, AgentType.RETAIL, AgentType.PATENT)
    ]
    return aggregate(*outcomes)


@pytest.mark.asyncio
async def test_record_novelty_check(async_db_session: AsyncSession):
    """Test a novelty check is stored as an insight memory."""
    repo = AIMemoryRepository(async_db_session)
    response = _response()

    memory = await repo.record_novelty_check("user-1", "project-9", response)

    assert memory.memory_type == "insight"
    assert memory.content["type"] == "novelty_check"
    assert memory.content["results"]["risk_level"] == "low_risk"
    assert "timestamp" in memory.content
    assert memory.importance_score == pytest.approx(response.overall_novelty_score)
    assert memory.summary == "Novelty check: low_risk"


@pytest.mark.asyncio
async def test_records_are_appended(async_db_session: AsyncSession):
    """Test each check adds a row and earlier rows are kept."""
    repo = AIMemoryRepository(async_db_session)
    await repo.record_novelty_check("user-1", "project-9", _response())
    await repo.record_novelty_check("user-1", "project-9", _response())
    await repo.record_novelty_check("user-1", "project-other", _response())

    rows = (
        await async_db_session.execute(select(AIMemory).where(AIMemory.project_id == "project-9"))
    ).scalars().all()

    assert len(rows) == 2
    assert {row.memory_type for row in rows} == {"insight"}
    assert len({row.id for row in rows}) == 2
