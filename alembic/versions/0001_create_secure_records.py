"""create secure_records table

Revision ID: 0001_create_secure_records
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_create_secure_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Opaque encrypted blobs only: no owner column, no index beyond the primary key.
    op.create_table(
        "secure_records",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("ciphertext", sa.Text(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )


def downgrade() -> None:
    op.drop_table("secure_records")
