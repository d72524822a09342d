"""Create settings and transaction_movements tables.

Revision ID: 20250730_01
Revises: 
Create Date: 2025-07-30 21:14:28
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20250730_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("key", name="uq_settings_key"),
    )
    op.create_index("ix_settings_key", "settings", ["key"], unique=True)

    op.create_table(
        "transaction_movements",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("description", sa.String(length=191), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column(
            "transaction_type",
            sa.Enum("income", "expense", name="transaction_type"),
            nullable=False,
        ),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_transaction_movements_transaction_date",
        "transaction_movements",
        ["transaction_date"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_transaction_movements_transaction_date",
        table_name="transaction_movements",
    )
    op.drop_table("transaction_movements")
    sa.Enum(name="transaction_type").drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_settings_key", table_name="settings")
    op.drop_table("settings")
