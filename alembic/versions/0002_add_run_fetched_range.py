"""add fetched date range to import runs

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("import_runs", sa.Column("last_fetched_at", sa.DateTime(), nullable=True))
    op.add_column("import_runs", sa.Column("earliest_fetched_at", sa.DateTime(), nullable=True))


def downgrade() -> None:
    op.drop_column("import_runs", "earliest_fetched_at")
    op.drop_column("import_runs", "last_fetched_at")
