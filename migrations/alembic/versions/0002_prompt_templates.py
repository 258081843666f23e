"""Add prompt_templates

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18

System templates (is_system_defined) carry no owner and are shared by all
users. placeholders and llm_config are JSONB documents; tag_ids is a JSONB
array of tag id strings.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: str | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "prompt_templates",
        sa.Column(
            "id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("template_content", sa.Text(), nullable=False),
        sa.Column("is_system_defined", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("tag_ids", postgresql.JSONB(), nullable=True),
        sa.Column("placeholders", postgresql.JSONB(), nullable=True),
        sa.Column("llm_config", postgresql.JSONB(), nullable=True),
        sa.Column("usage_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_used_at", sa.BigInteger(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("usage_count >= 0", name="ck_prompt_templates_usage_count"),
        sa.CheckConstraint(
            "is_system_defined = false OR owner_id IS NULL",
            name="ck_prompt_templates_system_unowned",
        ),
    )
    op.create_index("ix_prompt_templates_owner_id", "prompt_templates", ["owner_id"])
    op.create_index(
        "ix_prompt_templates_active_usage",
        "prompt_templates",
        ["is_active", sa.text("usage_count DESC")],
    )


def downgrade() -> None:
    op.drop_index("ix_prompt_templates_active_usage", table_name="prompt_templates")
    op.drop_index("ix_prompt_templates_owner_id", table_name="prompt_templates")
    op.drop_table("prompt_templates")
