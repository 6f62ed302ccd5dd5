"""Initial quota ledger: key usage, identity usage, rotation cursor."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


# Revision identifiers, used by Alembic.
revision = "0001_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "key_usage",
        sa.Column("secret_id", sa.String(length=64), primary_key=True),
        sa.Column("hits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("hits >= 0", name="ck_key_usage_hits_non_negative"),
    )
    op.create_index("ix_key_usage_day", "key_usage", ["day"])

    op.create_table(
        "identity_usage",
        sa.Column("identity_id", sa.String(length=256), primary_key=True),
        sa.Column("daily_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lifetime_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("daily_uses >= 0", name="ck_identity_usage_daily_non_negative"),
        sa.CheckConstraint("lifetime_uses >= 0", name="ck_identity_usage_lifetime_non_negative"),
    )
    op.create_index("ix_identity_usage_day", "identity_usage", ["day"])

    rotation_state = op.create_table(
        "rotation_state",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("last_index", sa.Integer(), nullable=False, server_default="-1"),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("id = 1", name="ck_rotation_state_singleton"),
        sa.CheckConstraint("last_index >= -1", name="ck_rotation_state_last_index"),
    )
    # The cursor singleton ships with the schema.
    op.execute(
        rotation_state.insert().values(id=1, last_index=-1, day=sa.func.current_date())
    )


def downgrade() -> None:
    op.drop_table("rotation_state")
    op.drop_index("ix_identity_usage_day", table_name="identity_usage")
    op.drop_table("identity_usage")
    op.drop_index("ix_key_usage_day", table_name="key_usage")
    op.drop_table("key_usage")
