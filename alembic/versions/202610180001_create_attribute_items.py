"""create attribute items

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "attribute_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("table_name", sa.String(length=128), nullable=False),
        sa.Column("item_key", sa.String(length=128), nullable=False),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("table_name", "item_key", name="uq_attribute_items_table_key"),
    )
    op.create_index("ix_attribute_items_table_name", "attribute_items", ["table_name"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_attribute_items_table_name", table_name="attribute_items")
    op.drop_table("attribute_items")
