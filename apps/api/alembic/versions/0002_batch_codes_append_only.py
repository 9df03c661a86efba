"""batch codes are append-only

Revision ID: 0002_batch_codes_append_only
Revises: 0001_batch_codes
Create Date: 2026-10-19
"""
from alembic import op

revision = "0002_batch_codes_append_only"
down_revision = "0001_batch_codes"
branch_labels = None
depends_on = None

def upgrade():
    op.execute(
        """
        CREATE OR REPLACE FUNCTION reject_batch_code_changes()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
          RAISE EXCEPTION
            'batch_codes is append-only (code % cannot be changed or removed).', OLD.code
            USING ERRCODE = '23514';
        END;
        $$;
        """
    )

    op.execute("DROP TRIGGER IF EXISTS trg_batch_codes_append_only ON batch_codes;")
    op.execute(
        """
        CREATE TRIGGER trg_batch_codes_append_only
        BEFORE UPDATE OR DELETE
        ON batch_codes
        FOR EACH ROW
        EXECUTE FUNCTION reject_batch_code_changes();
        """
    )

def downgrade():
    op.execute("DROP TRIGGER IF EXISTS trg_batch_codes_append_only ON batch_codes;")
    op.execute("DROP FUNCTION IF EXISTS reject_batch_code_changes();")
