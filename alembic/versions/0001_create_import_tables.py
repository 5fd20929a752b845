"""create import tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

import_status = sa.Enum("RUNNING", "COMPLETED", "FAILED", name="importstatus")


def upgrade() -> None:
    op.create_table(
        "data_sources",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_data_sources_provider", "data_sources", ["provider"], unique=False)
    op.create_index("ix_data_sources_is_enabled", "data_sources", ["is_enabled"], unique=False)

    op.create_table(
        "data_source_configs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("data_source_id", sa.String(length=36), nullable=False),
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["data_source_id"], ["data_sources.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_data_source_config_key", "data_source_configs", ["data_source_id", "key"], unique=True)

    op.create_table(
        "repositories",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("data_source_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["data_source_id"], ["data_sources.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_repositories_data_source_id", "repositories", ["data_source_id"], unique=False)
    op.create_index("ix_repositories_is_enabled", "repositories", ["is_enabled"], unique=False)

    op.create_table(
        "import_batches",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("status", import_status, nullable=False),
        sa.Column("triggered_by", sa.String(length=200), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.BigInteger(), nullable=True),
        sa.Column("total_scripts", sa.Integer(), nullable=False),
        sa.Column("completed_scripts", sa.Integer(), nullable=False),
        sa.Column("failed_scripts", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_batches_status", "import_batches", ["status"], unique=False)
    op.create_index("ix_import_batches_started_at", "import_batches", ["started_at"], unique=False)
    op.create_index("ix_import_batches_created_at", "import_batches", ["created_at"], unique=False)
    op.create_index(
        "uq_import_batch_single_running",
        "import_batches",
        ["status"],
        unique=True,
        postgresql_where=sa.text("status = 'RUNNING'"),
        sqlite_where=sa.text("status = 'RUNNING'"),
    )

    op.create_table(
        "import_runs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("data_source_id", sa.String(length=36), nullable=False),
        sa.Column("script_name", sa.String(length=100), nullable=False),
        sa.Column("status", import_status, nullable=False),
        sa.Column("records_imported", sa.Integer(), nullable=False),
        sa.Column("records_failed", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(["batch_id"], ["import_batches.id"]),
        sa.ForeignKeyConstraint(["data_source_id"], ["data_sources.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_runs_batch_id", "import_runs", ["batch_id"], unique=False)
    op.create_index("ix_import_runs_data_source_id", "import_runs", ["data_source_id"], unique=False)
    op.create_index("ix_import_runs_status", "import_runs", ["status"], unique=False)
    op.create_index("ix_import_runs_started_at", "import_runs", ["started_at"], unique=False)
    op.create_index("uq_import_run_script", "import_runs", ["batch_id", "data_source_id", "script_name"], unique=True)
    op.create_index(
        "idx_import_run_history",
        "import_runs",
        ["data_source_id", "script_name", "status", "completed_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_import_run_history", table_name="import_runs")
    op.drop_index("uq_import_run_script", table_name="import_runs")
    op.drop_index("ix_import_runs_started_at", table_name="import_runs")
    op.drop_index("ix_import_runs_status", table_name="import_runs")
    op.drop_index("ix_import_runs_data_source_id", table_name="import_runs")
    op.drop_index("ix_import_runs_batch_id", table_name="import_runs")
    op.drop_table("import_runs")

    op.drop_index("uq_import_batch_single_running", table_name="import_batches")
    op.drop_index("ix_import_batches_created_at", table_name="import_batches")
    op.drop_index("ix_import_batches_started_at", table_name="import_batches")
    op.drop_index("ix_import_batches_status", table_name="import_batches")
    op.drop_table("import_batches")

    op.drop_index("ix_repositories_is_enabled", table_name="repositories")
    op.drop_index("ix_repositories_data_source_id", table_name="repositories")
    op.drop_table("repositories")

    op.drop_index("idx_data_source_config_key", table_name="data_source_configs")
    op.drop_table("data_source_configs")

    op.drop_index("ix_data_sources_is_enabled", table_name="data_sources")
    op.drop_index("ix_data_sources_provider", table_name="data_sources")
    op.drop_table("data_sources")

    import_status.drop(op.get_bind(), checkfirst=True)
