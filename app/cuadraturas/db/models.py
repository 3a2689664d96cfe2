import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator, CHAR


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class Base(DeclarativeBase):
    pass


class RectificationRequest(Base):
    __tablename__ = "rectification_requests"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    session_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    session_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # [id, label] pair as returned by the POS source
    original_user: Mapped[list | None] = mapped_column(JSON, nullable=True)
    original_start_at: Mapped[str | None] = mapped_column(String(32), nullable=True)
    original_stop_at: Mapped[str | None] = mapped_column(String(32), nullable=True)
    original_store_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_store_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_cash_balance_start: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    original_cash_balance_end_real: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    original_theoretical_cash: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    original_cash_difference: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    original_cash_real_transaction: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    rectification_details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    submitted_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    submitted_by_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pendiente", nullable=False)
    store_id_submitter: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_by_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    approved_by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)


class RectificationDraft(Base):
    __tablename__ = "rectification_drafts"

    session_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    last_edited_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_edited_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(64), nullable=True)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    actor_uid: Mapped[str | None] = mapped_column(String(128), index=True, nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    trace_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    result: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


Index("ix_rectification_requests_session_submitted", RectificationRequest.session_id, RectificationRequest.submitted_at)
