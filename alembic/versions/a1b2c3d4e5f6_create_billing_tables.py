"""create batches, debtors, verification_records and billing_attempts

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects import postgresql


revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "batch_status": ("pending", "processing", "completed", "failed"),
    "debtor_status": ("pending", "billed"),
    "validation_status": ("pending", "valid", "invalid"),
    "billing_attempt_status": ("pending", "approved", "declined", "chargebacked"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps():
    return [
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    for name, values in ENUMS.items():
        exists = conn.execute(text("SELECT 1 FROM pg_type WHERE typname = :n"), {"n": name}).scalar()
        if not exists:
            labels = ", ".join(f"'{v}'" for v in values)
            op.execute(f"CREATE TYPE {name} AS ENUM ({labels})")

    op.create_table(
        "batches",
        *_timestamps(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("original_filename", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(512), nullable=False),
        sa.Column("results_path", sa.String(512), nullable=True),
        sa.Column("status", _enum("batch_status"), nullable=False),
        sa.Column("total_records", sa.Integer(), nullable=False),
        sa.Column("record_limit", sa.Integer(), nullable=True),
        sa.Column("processed_records", sa.Integer(), nullable=False),
        sa.Column("success_count", sa.Integer(), nullable=False),
        sa.Column("failed_count", sa.Integer(), nullable=False),
        sa.Column("credits_used", sa.Integer(), nullable=False),
        sa.Column("column_mapping", postgresql.JSONB(), nullable=False),
        sa.Column("meta", postgresql.JSONB(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_batches_id"), "batches", ["id"], unique=False)
    op.create_index(op.f("ix_batches_user_id"), "batches", ["user_id"], unique=False)
    op.create_index(op.f("ix_batches_status"), "batches", ["status"], unique=False)

    op.create_table(
        "debtors",
        *_timestamps(),
        sa.Column("batch_id", sa.UUID(), nullable=False),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column("iban", sa.String(34), nullable=False),
        sa.Column("bic", sa.String(11), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", _enum("debtor_status"), nullable=False),
        sa.Column("validation_status", _enum("validation_status"), nullable=False),
        sa.Column("iban_valid", sa.Boolean(), nullable=False),
        sa.Column("validation_errors", postgresql.JSONB(), nullable=True),
        sa.Column("raw_data", postgresql.JSONB(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["batch_id"], ["batches.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_debtors_id"), "debtors", ["id"], unique=False)
    op.create_index(op.f("ix_debtors_batch_id"), "debtors", ["batch_id"], unique=False)
    op.create_index(op.f("ix_debtors_iban"), "debtors", ["iban"], unique=False)
    op.create_index(op.f("ix_debtors_status"), "debtors", ["status"], unique=False)
    op.create_index(op.f("ix_debtors_validation_status"), "debtors", ["validation_status"], unique=False)
    op.create_index(op.f("ix_debtors_deleted_at"), "debtors", ["deleted_at"], unique=False)

    op.create_table(
        "verification_records",
        *_timestamps(),
        sa.Column("batch_id", sa.UUID(), nullable=False),
        sa.Column("debtor_id", sa.UUID(), nullable=False),
        sa.Column("result", sa.String(32), nullable=True),
        sa.Column("name_match", sa.String(16), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("meta", postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(["batch_id"], ["batches.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["debtor_id"], ["debtors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("batch_id", "debtor_id", name="uq_verification_records_batch_debtor"),
    )
    op.create_index(op.f("ix_verification_records_id"), "verification_records", ["id"], unique=False)
    op.create_index(op.f("ix_verification_records_batch_id"), "verification_records", ["batch_id"], unique=False)
    op.create_index(op.f("ix_verification_records_debtor_id"), "verification_records", ["debtor_id"], unique=False)

    op.create_table(
        "billing_attempts",
        *_timestamps(),
        sa.Column("batch_id", sa.UUID(), nullable=False),
        sa.Column("debtor_id", sa.UUID(), nullable=False),
        sa.Column("status", _enum("billing_attempt_status"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.String(64), nullable=True),
        sa.Column("reference", sa.String(128), nullable=False),
        sa.Column("meta", postgresql.JSONB(), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["batch_id"], ["batches.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["debtor_id"], ["debtors.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference"),
    )
    op.create_index(op.f("ix_billing_attempts_id"), "billing_attempts", ["id"], unique=False)
    op.create_index(op.f("ix_billing_attempts_batch_id"), "billing_attempts", ["batch_id"], unique=False)
    op.create_index(op.f("ix_billing_attempts_debtor_id"), "billing_attempts", ["debtor_id"], unique=False)
    op.create_index(op.f("ix_billing_attempts_status"), "billing_attempts", ["status"], unique=False)
    op.create_index(op.f("ix_billing_attempts_transaction_id"), "billing_attempts", ["transaction_id"], unique=False)


def downgrade() -> None:
    op.drop_table("billing_attempts")
    op.drop_table("verification_records")
    op.drop_table("debtors")
    op.drop_table("batches")
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
