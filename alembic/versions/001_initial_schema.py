"""initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create search_cache and ai_memory tables.

    search_cache rows are evicted oldest-first per search_type, so
    (search_type, created_at) is indexed together.
    """
    op.create_table(
        "search_cache",
        sa.Column("id", UUID(as_uuid=True), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("query_hash", sa.String(length=128), nullable=False),
        sa.Column("search_type", sa.String(length=20), nullable=False),
        sa.Column("query_params", JSONB(), nullable=False),
        sa.Column("results", JSONB(), nullable=False),
        sa.Column("result_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source_api", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("query_hash", name="uq_search_cache_query_hash"),
        sa.CheckConstraint(
            "search_type IN ('patent', 'web', 'retail')",
            name="check_search_type"
        ),
    )
    op.create_index(
        "idx_search_cache_type_created",
        "search_cache",
        ["search_type", "created_at"],
        unique=False,
    )
    op.create_index("idx_search_cache_expires_at", "search_cache", ["expires_at"], unique=False)

    op.create_table(
        "ai_memory",
        sa.Column("id", UUID(as_uuid=True), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=True),
        sa.Column("memory_type", sa.String(length=30), nullable=False),
        sa.Column("content", JSONB(), nullable=False),
        sa.Column("importance_score", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "memory_type IN ('insight', 'preference', 'context')",
            name="check_memory_type"
        ),
    )
    op.create_index("idx_ai_memory_user_id", "ai_memory", ["user_id"], unique=False)
    op.create_index("idx_ai_memory_project_id", "ai_memory", ["project_id"], unique=False)
    op.create_index("idx_ai_memory_memory_type", "ai_memory", ["memory_type"], unique=False)


def downgrade() -> None:
    """Drop ai_memory and search_cache."""
    op.drop_index("idx_ai_memory_memory_type", table_name="ai_memory")
    op.drop_index("idx_ai_memory_project_id", table_name="ai_memory")
    op.drop_index("idx_ai_memory_user_id", table_name="ai_memory")
    op.drop_table("ai_memory")

    op.drop_index("idx_search_cache_expires_at", table_name="search_cache")
    op.drop_index("idx_search_cache_type_created", table_name="search_cache")
    op.drop_table("search_cache")
