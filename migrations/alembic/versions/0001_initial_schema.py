"""Initial schema - users, shard ledger, nexi, notebooks, chunks, tags, ordering

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Timestamps are BIGINT epoch milliseconds. owner_id columns hold the
identity-provider subject, not users.id. Enum-like text columns are guarded
by CHECK constraints matching nexustech.db.models.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PLACEMENTS = "('top', 'bottom')"


def _id() -> sa.Column:
    return sa.Column(
        "id", sa.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.BigInteger(), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.BigInteger(), nullable=False)


def upgrade() -> None:
    # Enable pgcrypto extension for gen_random_uuid()
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ==========================================================================
    # users table
    # ==========================================================================
    op.create_table(
        "users",
        _id(),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("fav_model", sa.Text(), nullable=True),
        sa.Column("is_dark_mode", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_paid", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("add_chunk_placement", sa.Text(), nullable=True),
        sa.Column("import_chunk_placement", sa.Text(), nullable=True),
        sa.Column("research_chunk_placement", sa.Text(), nullable=True),
        sa.Column("shard_balance", sa.Float(), server_default="0", nullable=False),
        sa.Column("monthly_shard_allowance", sa.Float(), server_default="0", nullable=False),
        sa.Column("last_allowance_reset_at", sa.BigInteger(), nullable=True),
        sa.Column("purchased_shards", sa.Float(), server_default="0", nullable=False),
        sa.Column("last_active_at", sa.BigInteger(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("subject", name="uq_users_subject"),
        sa.CheckConstraint("shard_balance >= 0", name="ck_users_shard_balance_nonnegative"),
        sa.CheckConstraint("purchased_shards >= 0", name="ck_users_purchased_nonnegative"),
        sa.CheckConstraint(
            f"add_chunk_placement IN {PLACEMENTS}", name="ck_users_add_chunk_placement"
        ),
        sa.CheckConstraint(
            f"import_chunk_placement IN {PLACEMENTS}", name="ck_users_import_chunk_placement"
        ),
        sa.CheckConstraint(
            f"research_chunk_placement IN {PLACEMENTS}",
            name="ck_users_research_chunk_placement",
        ),
    )

    # ==========================================================================
    # shard_transactions table (append-only ledger)
    # ==========================================================================
    op.create_table(
        "shard_transactions",
        _id(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("shard_amount", sa.Float(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("associated_conversation_id", sa.UUID(), nullable=True),
        sa.Column("input_tokens_used", sa.Integer(), nullable=True),
        sa.Column("output_tokens_used", sa.Integer(), nullable=True),
        sa.Column("model_id_used", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "type IN ('DEBIT', 'CREDIT', 'MONTHLY_RESET', 'PURCHASE', 'WELCOME_BONUS')",
            name="ck_shard_transactions_type",
        ),
    )
    op.create_index(
        "ix_shard_transactions_user_created", "shard_transactions", ["user_id", "created_at"]
    )

    # ==========================================================================
    # llm_models table (stored model pricing)
    # ==========================================================================
    op.create_table(
        "llm_models",
        _id(),
        sa.Column("model_id", sa.Text(), nullable=False),
        sa.Column("input_token_cost_per_million", sa.Float(), nullable=False),
        sa.Column("output_token_cost_per_million", sa.Float(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("model_id", name="uq_llm_models_model_id"),
    )

    # ==========================================================================
    # nexi and notebooks
    # ==========================================================================
    op.create_table(
        "nexi",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        sa.Column("guest_session_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("length(name) BETWEEN 1 AND 200", name="ck_nexi_name_length"),
    )
    op.create_index("ix_nexi_owner_id", "nexi", ["owner_id"])
    op.create_index("ix_nexi_guest_session_id", "nexi", ["guest_session_id"])

    op.create_table(
        "notebooks",
        _id(),
        sa.Column("nexus_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meta_question", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["nexus_id"], ["nexi.id"], ondelete="CASCADE"),
        sa.CheckConstraint("length(name) BETWEEN 1 AND 200", name="ck_notebooks_name_length"),
    )
    op.create_index("ix_notebooks_nexus_id", "notebooks", ["nexus_id"])
    op.create_index("ix_notebooks_owner_id", "notebooks", ["owner_id"])

    # ==========================================================================
    # meta_tags and chunks
    # ==========================================================================
    op.create_table(
        "meta_tags",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("display_color", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "display_color IN ('BLUE', 'GREEN', 'YELLOW', 'RED', 'PURPLE')",
            name="ck_meta_tags_display_color",
        ),
    )

    op.create_table(
        "chunks",
        _id(),
        sa.Column("notebook_id", sa.UUID(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("original_text", sa.Text(), server_default="", nullable=False),
        sa.Column("user_edited_text", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), nullable=True),
        sa.Column("chunk_type", sa.Text(), server_default="text", nullable=False),
        sa.Column("meta_tag_id", sa.UUID(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["notebook_id"], ["notebooks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["meta_tag_id"], ["meta_tags.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "chunk_type IN ('text', 'code', 'document')", name="ck_chunks_chunk_type"
        ),
    )
    op.create_index("ix_chunks_notebook_id", "chunks", ["notebook_id"])
    op.create_index("ix_chunks_owner_id", "chunks", ["owner_id"])

    # ==========================================================================
    # tags and chunk_tags
    # ==========================================================================
    op.create_table(
        "tags",
        _id(),
        sa.Column("notebook_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.Text(), nullable=True),
        sa.Column("parent_tag_id", sa.UUID(), nullable=True),
        sa.Column("origin_notebook_id", sa.UUID(), nullable=True),
        sa.Column("origin_nexus_id", sa.UUID(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["notebook_id"], ["notebooks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_tag_id"], ["tags.id"], ondelete="SET NULL"),
        sa.CheckConstraint("length(name) BETWEEN 1 AND 100", name="ck_tags_name_length"),
        sa.CheckConstraint(
            "parent_tag_id IS NULL OR parent_tag_id != id", name="ck_tags_not_self"
        ),
    )
    op.create_index("ix_tags_notebook_id", "tags", ["notebook_id"])
    op.create_index("ix_tags_owner_id", "tags", ["owner_id"])

    op.create_table(
        "chunk_tags",
        sa.Column("chunk_id", sa.UUID(), nullable=False),
        sa.Column("tag_id", sa.UUID(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("chunk_id", "tag_id"),
        sa.ForeignKeyConstraint(["chunk_id"], ["chunks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tag_id"], ["tags.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_chunk_tags_tag_id", "chunk_tags", ["tag_id"])

    # ==========================================================================
    # chunk satellites: conduits, jems, attachments, connections
    # ==========================================================================
    op.create_table(
        "conduits",
        _id(),
        sa.Column("source_chunk_id", sa.UUID(), nullable=False),
        sa.Column("target_chunk_id", sa.UUID(), nullable=False),
        sa.Column("conduit_type", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["source_chunk_id"], ["chunks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_chunk_id"], ["chunks.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "conduit_type IN ('expands_on', 'contradicts', 'resolves', 'references', "
            "'builds_on')",
            name="ck_conduits_conduit_type",
        ),
    )
    op.create_index("ix_conduits_source_chunk_id", "conduits", ["source_chunk_id"])
    op.create_index("ix_conduits_target_chunk_id", "conduits", ["target_chunk_id"])

    op.create_table(
        "jems",
        _id(),
        sa.Column("chunk_id", sa.UUID(), nullable=False),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["chunk_id"], ["chunks.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_jems_chunk_id", "jems", ["chunk_id"])

    op.create_table(
        "attachments",
        _id(),
        sa.Column("chunk_id", sa.UUID(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["chunk_id"], ["chunks.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attachments_chunk_id", "attachments", ["chunk_id"])

    op.create_table(
        "chunk_connections",
        _id(),
        sa.Column("source_chunk_id", sa.UUID(), nullable=False),
        sa.Column("target_notebook_id", sa.UUID(), nullable=False),
        sa.Column("shadow_chunk_id", sa.UUID(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["source_chunk_id"], ["chunks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["target_notebook_id"], ["notebooks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shadow_chunk_id"], ["chunks.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "source_chunk_id", "target_notebook_id", name="uix_chunk_connections_source_target"
        ),
    )
    op.create_index(
        "ix_chunk_connections_source_chunk_id", "chunk_connections", ["source_chunk_id"]
    )
    op.create_index(
        "ix_chunk_connections_shadow_chunk_id", "chunk_connections", ["shadow_chunk_id"]
    )

    # ==========================================================================
    # conversations
    # ==========================================================================
    op.create_table(
        "conversations",
        _id(),
        sa.Column("notebook_id", sa.UUID(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("model_used", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["notebook_id"], ["notebooks.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_conversations_notebook_id", "conversations", ["notebook_id"])
    op.create_index("ix_conversations_owner_id", "conversations", ["owner_id"])

    op.create_table(
        "conversation_messages",
        _id(),
        sa.Column("conversation_id", sa.UUID(), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["conversation_id"], ["conversations.id"], ondelete="CASCADE"
        ),
    )
    op.create_index(
        "ix_conversation_messages_conversation_id",
        "conversation_messages",
        ["conversation_id"],
    )

    # ==========================================================================
    # locus_content_items (ordering)
    # ==========================================================================
    op.create_table(
        "locus_content_items",
        _id(),
        sa.Column("locus_id", sa.Text(), nullable=False),
        sa.Column("locus_type", sa.Text(), nullable=False),
        sa.Column("content_type", sa.Text(), nullable=False),
        sa.Column("content_id", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("parent_id", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "locus_type IN ('nexus', 'notebook')", name="ck_locus_content_items_locus_type"
        ),
        sa.CheckConstraint(
            "content_type IN ('chunk', 'notebook', 'tag', 'conversationMessage')",
            name="ck_locus_content_items_content_type",
        ),
        sa.CheckConstraint(
            "position >= 0", name="ck_locus_content_items_position_nonnegative"
        ),
    )
    op.create_index(
        "ix_locus_content_items_locus_parent_position",
        "locus_content_items",
        ["locus_id", "parent_id", "position"],
    )
    op.create_index(
        "ix_locus_content_items_content",
        "locus_content_items",
        ["content_type", "content_id"],
    )
    op.create_index(
        "ix_locus_content_items_locus_type",
        "locus_content_items",
        ["locus_id", "content_type"],
    )
    op.create_index("ix_locus_content_items_owner_id", "locus_content_items", ["owner_id"])


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_table("locus_content_items")
    op.drop_table("conversation_messages")
    op.drop_table("conversations")
    op.drop_table("chunk_connections")
    op.drop_table("attachments")
    op.drop_table("jems")
    op.drop_table("conduits")
    op.drop_table("chunk_tags")
    op.drop_table("tags")
    op.drop_table("chunks")
    op.drop_table("meta_tags")
    op.drop_table("notebooks")
    op.drop_table("nexi")
    op.drop_table("llm_models")
    op.drop_table("shard_transactions")
    op.drop_table("users")
