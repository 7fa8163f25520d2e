"""create_buttons_and_hosts

Revision ID: a3d1c7e90b42
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a3d1c7e90b42"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _record_columns(key_column: str) -> list[sa.Column]:
    return [
        sa.Column(key_column, sa.Text(), primary_key=True),
        sa.Column("value", postgresql.JSONB(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP")
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP")
        ),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    # Buttons keyed by SHA-256 of the image bytes
    op.create_table("buttons", *_record_columns("hash"))
    op.create_index("idx_buttons_updated_at", "buttons", ["updated_at"])

    # Hosts keyed by punycode hostname
    op.create_table("hosts", *_record_columns("host"))
    op.create_index("idx_hosts_updated_at", "hosts", ["updated_at"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_hosts_updated_at", table_name="hosts")
    op.drop_table("hosts")
    op.drop_index("idx_buttons_updated_at", table_name="buttons")
    op.drop_table("buttons")
