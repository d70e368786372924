"""Initial schema for treasury ingestion.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

Tables: accounts, budgets, budget_lines, movements, import_logs,
matching_configurations.
"""

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    budget_status_enum = sa.Enum("Borrador", "Activo", "Cerrado", name="budget_status_enum")
    movement_status_enum = sa.Enum(
        "conciliado",
        "confirmado",
        "no_planificado",
        "confirmado_manual",
        "rechazado",
        name="movement_status_enum",
    )
    transfer_state_enum = sa.Enum("pending", "paired", name="transfer_state_enum")
    movement_source_enum = sa.Enum("import", "manual", "inbox", name="movement_source_enum")
    import_source_enum = sa.Enum("treasury_import", "inbox_auto", name="import_source_enum")
    import_outcome_enum = sa.Enum(
        "completed",
        "completed_with_errors",
        "requires_account_selection",
        "failed",
        name="import_outcome_enum",
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("bank", sa.String(length=255), nullable=True),
        sa.Column("iban", sa.String(length=34), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_accounts_iban", "accounts", ["iban"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("status", budget_status_enum, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_budgets_year", "budgets", ["year"])

    op.create_table(
        "budget_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("budget_id", sa.Integer(), sa.ForeignKey("budgets.id"), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("subcategory", sa.String(length=100), nullable=True),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("provider_name", sa.String(length=255), nullable=True),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("amount_by_month", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_budget_lines_budget_id", "budget_lines", ["budget_id"])

    op.create_table(
        "movements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("txn_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False, comment="Signed, negative is a debit"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("normalized_description", sa.Text(), nullable=False),
        sa.Column("counterparty", sa.String(length=255), nullable=True),
        sa.Column("reference", sa.String(length=255), nullable=True, comment="Bank reference"),
        sa.Column("iban_detected", sa.String(length=34), nullable=True),
        sa.Column("category_type", sa.String(length=100), nullable=True),
        sa.Column("category_subtype", sa.String(length=100), nullable=True),
        sa.Column("status", movement_status_enum, nullable=False),
        sa.Column("plan_match_id", sa.Integer(), sa.ForeignKey("budget_lines.id"), nullable=True),
        sa.Column("match_confidence", sa.Numeric(5, 2), nullable=True),
        sa.Column("match_reason", sa.String(length=500), nullable=True),
        sa.Column("is_transfer", sa.Boolean(), nullable=False),
        sa.Column("transfer_group_id", sa.String(length=64), nullable=True),
        sa.Column("transfer_state", transfer_state_enum, nullable=True),
        sa.Column("dedup_hash", sa.String(length=64), nullable=False, comment="SHA256 content hash"),
        sa.Column("import_batch", sa.String(length=64), nullable=True),
        sa.Column("row_index", sa.Integer(), nullable=True),
        sa.Column("source", movement_source_enum, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("account_id", "dedup_hash", name="uq_movements_account_dedup_hash"),
    )
    op.create_index("ix_movements_account_id", "movements", ["account_id"])
    op.create_index("ix_movements_txn_date", "movements", ["txn_date"])
    op.create_index("ix_movements_transfer_group_id", "movements", ["transfer_group_id"])
    op.create_index("ix_movements_transfer_state", "movements", ["transfer_state"])
    op.create_index("ix_movements_import_batch", "movements", ["import_batch"])

    op.create_table(
        "import_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("batch_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("imported_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("detected_iban", sa.String(length=34), nullable=True),
        sa.Column("source", import_source_enum, nullable=False),
        sa.Column("outcome", import_outcome_enum, nullable=False),
        sa.Column("total_rows", sa.Integer(), nullable=False),
        sa.Column("valid_rows", sa.Integer(), nullable=False),
        sa.Column("invalid_rows", sa.Integer(), nullable=False),
        sa.Column("created", sa.Integer(), nullable=False),
        sa.Column("conciliated", sa.Integer(), nullable=False),
        sa.Column("unplanned", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.Integer(), nullable=False, comment="Duplicates"),
        sa.Column("transfers", sa.Integer(), nullable=False),
        sa.Column("errors", sa.Integer(), nullable=False),
        sa.Column("error_details", sa.JSON(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
    )
    op.create_index("ix_import_logs_account_id", "import_logs", ["account_id"])

    op.create_table(
        "matching_configurations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("overrides", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_matching_configurations_is_active", "matching_configurations", ["is_active"])


def downgrade() -> None:
    op.drop_table("matching_configurations")
    op.drop_table("import_logs")
    op.drop_table("movements")
    op.drop_table("budget_lines")
    op.drop_table("budgets")
    op.drop_table("accounts")

    op.execute("DROP TYPE IF EXISTS import_outcome_enum")
    op.execute("DROP TYPE IF EXISTS import_source_enum")
    op.execute("DROP TYPE IF EXISTS movement_source_enum")
    op.execute("DROP TYPE IF EXISTS transfer_state_enum")
    op.execute("DROP TYPE IF EXISTS movement_status_enum")
    op.execute("DROP TYPE IF EXISTS budget_status_enum")
