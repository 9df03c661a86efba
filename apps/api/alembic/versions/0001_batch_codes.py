"""batch codes + per-day allocation locks

Revision ID: 0001_batch_codes
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_batch_codes"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "batch_code_locks",
        sa.Column("group_key", sa.String(length=16), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "batch_codes",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("group_key", sa.String(length=16), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_batch_codes_code", "batch_codes", ["code"], unique=True)
    op.create_index("ix_batch_codes_group_key", "batch_codes", ["group_key"])

def downgrade():
    op.drop_index("ix_batch_codes_group_key", table_name="batch_codes")
    op.drop_index("ix_batch_codes_code", table_name="batch_codes")
    op.drop_table("batch_codes")
    op.drop_table("batch_code_locks")
