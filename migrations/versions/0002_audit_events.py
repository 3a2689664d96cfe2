"""audit events for rectification actions

Revision ID: 0002_audit_events
Revises: 0001_rectification_ledger
Create Date: 2025-05-09 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_audit_events"
down_revision = "0001_rectification_ledger"
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
        "audit_events",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("actor_uid", sa.String(length=128), nullable=True),
        sa.Column("actor_email", sa.String(length=255), nullable=True),
        sa.Column("actor_role", sa.String(length=50), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("trace_id", sa.String(length=255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("result", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_actor_uid", "audit_events", ["actor_uid"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_events_actor_uid", table_name="audit_events")
    op.drop_table("audit_events")
