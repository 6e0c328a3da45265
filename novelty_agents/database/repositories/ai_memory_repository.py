"""Repository for the append-only AI memory log.

Novelty checks run against a project are recorded as ``insight`` memories
so later conversations about the project can recall the verdict.
"""

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ...models.novelty import NoveltyCheckResponse
from ..models import AIMemory

logger = structlog.get_logger(__name__)


class AIMemoryRepository:
    """Append rows to the AI memory log."""

    def __init__(self, db: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            db: Async SQLAlchemy database session
        """
        self.db = db

    async def record_novelty_check(
        self,
        user_id: str,
        project_id: str,
        response: NoveltyCheckResponse,
    ) -> AIMemory:
        """Store one novelty check result.

        The importance score equals the overall novelty score.

        Example:
            >>> repo = AIMemoryRepository(db)
            >>> memory = await repo.record_novelty_check("user-1", "project-9", response)
            >>> memory.content["type"]
            'novelty_check'
        """
        memory = AIMemory(
            user_id=user_id,
            project_id=project_id,
            memory_type="insight",
            content={
                "type": "novelty_check",
                "results": response.model_dump(mode="json"),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            importance_score=response.overall_novelty_score,
            summary=f"Novelty check: {response.risk_level.value}",
        )
        self.db.add(memory)
        await self.db.commit()
        await self.db.refresh(memory)

        logger.info(
            "novelty_check_recorded",
            project_id=project_id,
            risk_level=response.risk_level.value,
            importance=response.overall_novelty_score,
        )
        return memory

