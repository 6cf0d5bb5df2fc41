"""Posts, blob_objects (feed.json storage) and provider_tokens.

Revision ID: 001
Revises:
Create Date: (run alembic upgrade head)

- posts: authoritative report records; entry_count guards concurrent averaging down.
- blob_objects: one row per blob key; generation enables conditional writes.
- provider_tokens: upstream OAuth tokens shared across restarts and workers.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "posts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(256), nullable=False, server_default=""),
        sa.Column("author_id", sa.String(128), nullable=False),
        sa.Column("author_name", sa.String(128), nullable=True),
        sa.Column("stock_name", sa.String(256), nullable=True),
        sa.Column("ticker", sa.String(32), nullable=False),
        sa.Column("exchange", sa.String(16), nullable=True),
        sa.Column("opinion", sa.String(8), nullable=False, server_default="hold"),
        sa.Column("position_type", sa.String(8), nullable=False, server_default="long"),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("initial_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("current_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("avg_price", sa.Float(), nullable=True),
        sa.Column("return_rate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("target_price", sa.Float(), nullable=True),
        sa.Column("entries_json", sa.Text(), nullable=True),
        sa.Column("entry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_return_rate", sa.Float(), nullable=True),
        sa.Column("closed_price", sa.Float(), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("likes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_posts_author_id", "posts", ["author_id"])
    op.create_index("ix_posts_ticker", "posts", ["ticker"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])
    op.create_table(
        "blob_objects",
        sa.Column("key", sa.String(255), primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_type", sa.String(128), nullable=False, server_default="application/json"),
        sa.Column("cache_control", sa.String(128), nullable=True),
        sa.Column("generation", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "provider_tokens",
        sa.Column("provider", sa.String(32), primary_key=True),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("provider_tokens")
    op.drop_table("blob_objects")
    op.drop_index("ix_posts_created_at", table_name="posts")
    op.drop_index("ix_posts_ticker", table_name="posts")
    op.drop_index("ix_posts_author_id", table_name="posts")
    op.drop_table("posts")
