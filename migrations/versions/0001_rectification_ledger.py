"""rectification ledger

Revision ID: 0001_rectification_ledger
Revises:
Create Date: 2025-05-02 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_rectification_ledger"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "rectification_requests",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("session_name", sa.String(length=255), nullable=True),
        sa.Column("original_user", sa.JSON(), nullable=True),
        sa.Column("original_start_at", sa.String(length=32), nullable=True),
        sa.Column("original_stop_at", sa.String(length=32), nullable=True),
        sa.Column("original_store_id", sa.Integer(), nullable=True),
        sa.Column("original_store_name", sa.String(length=255), nullable=True),
        sa.Column("original_cash_balance_start", sa.Numeric(14, 2), nullable=True),
        sa.Column("original_cash_balance_end_real", sa.Numeric(14, 2), nullable=True),
        sa.Column("original_theoretical_cash", sa.Numeric(14, 2), nullable=True),
        sa.Column("original_cash_difference", sa.Numeric(14, 2), nullable=True),
        sa.Column("original_cash_real_transaction", sa.Numeric(14, 2), nullable=True),
        sa.Column("rectification_details", sa.JSON(), nullable=False),
        sa.Column("submitted_by_email", sa.String(length=255), nullable=True),
        sa.Column("submitted_by_uid", sa.String(length=128), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pendiente"),
        sa.Column("store_id_submitter", sa.Integer(), nullable=True),
        sa.Column("approved_by_uid", sa.String(length=128), nullable=True),
        sa.Column("approved_by_name", sa.String(length=255), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=100), nullable=True),
    )
    op.create_index("ix_rectification_requests_session_id", "rectification_requests", ["session_id"], unique=False)
    op.create_index(
        "ix_rectification_requests_session_submitted",
        "rectification_requests",
        ["session_id", "submitted_at"],
        unique=False,
    )
    op.create_table(
        "rectification_drafts",
        sa.Column("session_id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("last_edited_email", sa.String(length=255), nullable=True),
        sa.Column("last_edited_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(length=255), nullable=False),
    )
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("products")
    op.drop_table("stores")
    op.drop_table("rectification_drafts")
    op.drop_index("ix_rectification_requests_session_submitted", table_name="rectification_requests")
    op.drop_index("ix_rectification_requests_session_id", table_name="rectification_requests")
    op.drop_table("rectification_requests")
