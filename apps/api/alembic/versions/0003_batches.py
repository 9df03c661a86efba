"""production batches

Revision ID: 0003_batches
Revises: 0002_batch_codes_append_only
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0003_batches"
down_revision = "0002_batch_codes_append_only"
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("batch_code", sa.String(length=32), sa.ForeignKey("batch_codes.code"), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=False),
        sa.Column("production_date", sa.Date(), nullable=False),
        sa.Column("production_source", sa.String(length=32), nullable=False),
        sa.Column("total_units", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'PLANNED'")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("co_packer_partner_id", sa.String(length=64), nullable=True),
        sa.Column("co_packer_lot_number", sa.String(length=128), nullable=True),
        sa.Column("co_packer_receiving_date", sa.Date(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("total_units > 0", name="ck_batch_units_positive"),
        sa.CheckConstraint(
            "status in ('PLANNED','IN_PROGRESS','QC_REVIEW','HOLD','RELEASED','CANCELLED')",
            name="ck_batch_status",
        ),
        sa.CheckConstraint(
            "production_source in ('IN_HOUSE','CO_PACKER')",
            name="ck_batch_production_source",
        ),
    )
    op.create_index("ix_batches_batch_code", "batches", ["batch_code"], unique=True)
    op.create_index("ix_batches_product_id", "batches", ["product_id"])
    op.create_index("ix_batches_production_date", "batches", ["production_date"])
    op.create_index("ix_batches_status", "batches", ["status"])

def downgrade():
    op.drop_index("ix_batches_status", table_name="batches")
    op.drop_index("ix_batches_production_date", table_name="batches")
    op.drop_index("ix_batches_product_id", table_name="batches")
    op.drop_index("ix_batches_batch_code", table_name="batches")
    op.drop_table("batches")
