from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog
from app.cuadraturas.core.logging import log_json
from app.cuadraturas.core.scope import is_admin
from app.cuadraturas.db.models import RectificationDraft
from app.cuadraturas.repos.drafts import DraftRepository
from app.cuadraturas.repos.rectification_requests import RectificationRequestRepository
from app.cuadraturas.schemas.drafts import DraftOut
from app.cuadraturas.schemas.rectifications import (
    Justification,
    LastEdited,
    PaymentDetail,
    PendingReceipt,
    RectificationForm,
    RenderedExpense,
)
from app.cuadraturas.services.audit import AuditEventPayload, AuditService

logger = logging.getLogger("cuadraturas.drafts")


def draft_payload_from_form(form: RectificationForm) -> dict[str, Any]:
    dumped = form.model_dump(mode="json", by_alias=True)
    cash_input = dumped.pop("nuevoSaldoFinalRealEfectivo", "")
    return {"mainFormData": {"nuevoSaldoFinalRealEfectivo": cash_input}, **dumped}


def merge_draft(base: RectificationForm, payload: dict[str, Any]) -> RectificationForm:
    """Lay a stored draft over ``base``.

    Only keys present in the draft replace base values. Payment details are
    matched by method id so system amounts always come from ``base``.
    """
    merged = base.model_copy(deep=True)

    main_form = payload.get("mainFormData") or {}
    cash_input = main_form.get("nuevoSaldoFinalRealEfectivo")
    if cash_input is not None:
        merged.cash_physical_input = str(cash_input)

    if "itemJustifications" in payload:
        merged.justifications = {
            name: [Justification.model_validate(item) for item in (items or [])]
            for name, items in (payload.get("itemJustifications") or {}).items()
        }
    if "gastosRendidos" in payload:
        merged.rendered_expenses = [
            RenderedExpense.model_validate(item) for item in (payload.get("gastosRendidos") or [])
        ]
    if "boletasPendientes" in payload:
        merged.pending_receipts = [
            PendingReceipt.model_validate(item) for item in (payload.get("boletasPendientes") or [])
        ]

    draft_details = payload.get("paymentDetails") or []
    if draft_details:
        if merged.payment_details:
            by_id = {str(item.get("id")): item for item in draft_details if isinstance(item, dict)}
            for detail in merged.payment_details:
                draft_detail = by_id.get(detail.id)
                if draft_detail is not None and draft_detail.get("fisicoEditable") is not None:
                    detail.physical_input = str(draft_detail["fisicoEditable"])
        else:
            merged.payment_details = [PaymentDetail.model_validate(item) for item in draft_details]
    return merged


def _last_edited(draft: RectificationDraft) -> LastEdited:
    timestamp = None
    if draft.last_edited_at is not None:
        timestamp = int(draft.last_edited_at.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return LastEdited(email=draft.last_edited_email, timestamp=timestamp)


def _draft_out(draft: RectificationDraft) -> DraftOut:
    return DraftOut(session_id=draft.session_id, payload=dict(draft.payload or {}), last_edited=_last_edited(draft))


class DraftService:
    """One collaborative draft per session; last write wins."""

    def __init__(
        self,
        db,
        *,
        lookup_attempts: int = 3,
        lookup_delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.repo = DraftRepository(db)
        self.requests = RectificationRequestRepository(db)
        self.lookup_attempts = max(1, lookup_attempts)
        self.lookup_delay_seconds = lookup_delay_seconds
        self.sleep = sleep

    def save_draft(self, actor: Actor, session_id: int, form: RectificationForm) -> DraftOut:
        if not is_admin(actor.role):
            raise AppError(
                ErrorCatalog.PERMISSION_DENIED,
                details={"message": "Solo los administradores pueden guardar borradores en modo creación."},
            )
        if self.requests.list_for_session(session_id):
            raise AppError(ErrorCatalog.REQUEST_ALREADY_EXISTS, details={"session_id": session_id})

        edited_at = datetime.utcnow()
        payload = draft_payload_from_form(form)
        payload["lastEdited"] = {
            "email": actor.email,
            "timestamp": int(edited_at.replace(tzinfo=timezone.utc).timestamp() * 1000),
        }
        try:
            draft = self.repo.upsert(
                RectificationDraft(
                    session_id=session_id,
                    payload=payload,
                    last_edited_email=actor.email,
                    last_edited_at=edited_at,
                )
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AppError(ErrorCatalog.PERSISTENCE_FAILURE, details={"message": str(exc)}) from exc

        log_json(
            logger,
            {"event": "draft_saved", "session_id": session_id, "user_id": actor.uid, "trace_id": actor.trace_id},
        )
        AuditService(self.db).record_event(
            AuditEventPayload(
                actor=actor,
                action="rectification_draft.save",
                entity_type="rectification_draft",
                entity_id=str(session_id),
                metadata={"session_id": session_id},
            )
        )
        return _draft_out(draft)

    def load_draft(self, session_id: int, *, expected: bool = False) -> DraftOut | None:
        attempts = self.lookup_attempts if expected else 1
        for attempt in range(attempts):
            draft = self.repo.get(session_id)
            if draft is not None:
                return _draft_out(draft)
            if attempt < attempts - 1:
                self.sleep(self.lookup_delay_seconds)
                self.db.expire_all()
        if expected:
            log_json(
                logger,
                {"event": "draft_not_found", "session_id": session_id, "attempts": attempts},
                level=logging.WARNING,
            )
        return None

    def draft_session_ids(self) -> set[int]:
        return self.repo.session_ids()

    def clear_draft(self, session_id: int) -> None:
        self.repo.delete(session_id)
        log_json(logger, {"event": "draft_cleared", "session_id": session_id})
