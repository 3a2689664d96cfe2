from __future__ import annotations

import logging
import time
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.cuadraturas.clients.pos_query import PosQueryClient
from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog
from app.cuadraturas.core.logging import log_json
from app.cuadraturas.core.scope import is_admin, is_superadmin
from app.cuadraturas.db.models import RectificationRequest
from app.cuadraturas.repos.rectification_requests import RectificationRequestRepository
from app.cuadraturas.schemas.rectifications import (
    ActionAvailability,
    DecisionRequest,
    DecisionResponse,
    DiscrepancySummary,
    Justification,
    PaymentDetail,
    PaymentMethodConfig,
    PaymentMethodTotal,
    PendingReceipt,
    PreviewRequest,
    ReconciliationViewModel,
    RectificationForm,
    RectificationRequestOut,
    RenderedExpense,
    SubmitRectificationRequest,
    SubmitRectificationResponse,
)
from app.cuadraturas.schemas.sessions import PageMode, PosSession, RoutingState, SessionRow
from app.cuadraturas.services.audit import AuditEventPayload, AuditService
from app.cuadraturas.services.drafts import DraftService, merge_draft
from app.cuadraturas.services.reconciliation import (
    build_rectification_details,
    cash_method,
    check_submission,
    compute_discrepancies,
    expected_kind,
    parse_amount,
    totals_by_method,
)
from app.cuadraturas.services.session_aggregator import latest_requests_by_session, select_session_for_rectification

logger = logging.getLogger("cuadraturas.reconciliation")

SUBMIT_SUCCESS_MESSAGE = "Solicitud de rectificación enviada."


class LoadPhase(str, Enum):
    LOADING = "loading"
    MERGING_DRAFT = "merging_draft"
    READY = "ready"
    ERROR = "error"


class LoadEvent(str, Enum):
    BASE_LOADED = "base_loaded"
    DRAFT_MERGED = "draft_merged"
    FAILED = "failed"


class InvalidTransition(RuntimeError):
    def __init__(self, phase: LoadPhase, event: LoadEvent):
        self.phase = phase
        self.event = event
        super().__init__(f"Invalid load transition: {phase.value} -> {event.value}")


_TRANSITIONS = {
    (LoadPhase.LOADING, LoadEvent.BASE_LOADED): LoadPhase.MERGING_DRAFT,
    (LoadPhase.LOADING, LoadEvent.FAILED): LoadPhase.ERROR,
    (LoadPhase.MERGING_DRAFT, LoadEvent.DRAFT_MERGED): LoadPhase.READY,
    (LoadPhase.MERGING_DRAFT, LoadEvent.FAILED): LoadPhase.ERROR,
}


def transition(phase: LoadPhase, event: LoadEvent) -> LoadPhase:
    try:
        return _TRANSITIONS[(phase, event)]
    except KeyError:
        raise InvalidTransition(phase, event) from None


def amount_text(value: Decimal | None) -> str:
    if value is None:
        return ""
    if value == value.to_integral_value():
        return str(int(value))
    return format(value, "f")


def _int_or_none(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def page_title(mode: PageMode, session: PosSession, request: RectificationRequestOut | None) -> str:
    session_name = session.name or f"ID: {session.id}"
    if mode == "create":
        return f"Crear Rectificación Para Sesión: {session_name}"
    if request is not None:
        status_label = request.status.replace("_", " ")
        if mode == "review":
            return f"Revisar Solicitud ({status_label}) - Sesión: {session_name}"
        return f"Detalle Solicitud ({status_label}) - Sesión: {session_name}"
    return f"Detalle Sesión (Sin Rectificar): {session_name}"


def action_availability(
    mode: PageMode, role: str | None, request: RectificationRequestOut | None
) -> ActionAvailability:
    editable = mode == "create" and is_admin(role)
    return ActionAvailability(
        can_edit=editable,
        can_save_draft=editable,
        can_submit=editable,
        can_decide=(
            mode == "review" and is_superadmin(role) and request is not None and request.status == "pendiente"
        ),
    )


def _validation_error(message: str) -> AppError:
    return AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": message})


class ReconciliationWorkspace:
    """In-memory editing of a form while composing a request."""

    def __init__(
        self,
        form: RectificationForm,
        *,
        mode: PageMode,
        role: str | None,
        methods: list[PaymentMethodConfig],
        session: PosSession | None = None,
    ):
        self.form = form
        self.session = session
        self.mode = mode
        self.role = role
        self.methods = methods

    def _require_editable(self) -> None:
        if self.mode != "create" or not is_admin(self.role):
            raise AppError(
                ErrorCatalog.PERMISSION_DENIED,
                details={"message": "Solo los administradores pueden editar en modo creación."},
            )

    def _method_names(self) -> set[str]:
        return {method.display_name for method in self.methods}

    @staticmethod
    def _positive_integral(value) -> Decimal | None:
        try:
            amount = parse_amount(value)
        except ValueError:
            return None
        if amount is None or amount <= 0 or amount != amount.to_integral_value():
            return None
        return amount

    def _row_gross(self, method_name: str) -> Decimal | None:
        if self.session is None:
            return None
        summary = self.summary(self.session)
        rows = ([summary.cash] if summary.cash is not None else []) + summary.methods
        return next((row.gross_difference for row in rows if row.method_name == method_name), None)

    def add_justification(self, method_name: str, amount, reason: str, kind: str | None = None) -> Justification:
        self._require_editable()
        if method_name not in self._method_names():
            raise _validation_error(f"Método de pago desconocido: {method_name}")
        parsed = self._positive_integral(amount)
        reason = (reason or "").strip()
        if parsed is None or not reason:
            raise _validation_error("Monto (mayor a cero) y motivo son requeridos para la justificación.")
        if len(reason) > 100:
            raise _validation_error("El motivo no puede exceder los 100 caracteres.")
        gross = self._row_gross(method_name)
        wanted = expected_kind(gross) if gross is not None else None
        if kind is None:
            kind = wanted or "faltante"
        if kind not in ("faltante", "sobrante"):
            raise _validation_error("Tipo de justificación inválido.")
        if wanted is not None and kind != wanted:
            raise _validation_error(f"La diferencia de {method_name} corresponde a un {wanted}.")
        entry = Justification(amount=parsed, reason=reason, kind=kind, timestamp=int(time.time() * 1000))
        self.form.justifications.setdefault(method_name, []).append(entry)
        return entry

    def remove_justification(self, method_name: str, index: int) -> Justification:
        self._require_editable()
        entries = self.form.justifications.get(method_name, [])
        if not 0 <= index < len(entries):
            raise AppError(ErrorCatalog.NOT_FOUND, details={"method": method_name, "index": index})
        removed = entries.pop(index)
        if not entries:
            self.form.justifications.pop(method_name, None)
        return removed

    def add_expense(self, amount, voucher_number: str, reason: str) -> RenderedExpense:
        self._require_editable()
        parsed = self._positive_integral(amount)
        reason = (reason or "").strip()
        if parsed is None or not reason:
            raise _validation_error("Monto válido y motivo son requeridos.")
        if not (voucher_number or "").strip():
            raise _validation_error("El número de comprobante es requerido.")
        if len(reason) > 50:
            raise _validation_error("El motivo del gasto no puede exceder los 50 caracteres.")
        entry = RenderedExpense(
            amount=parsed,
            voucher_number=voucher_number.strip(),
            reason=reason,
            timestamp=int(time.time() * 1000),
        )
        self.form.rendered_expenses.append(entry)
        return entry

    def remove_expense(self, index: int) -> RenderedExpense:
        self._require_editable()
        if not 0 <= index < len(self.form.rendered_expenses):
            raise AppError(ErrorCatalog.NOT_FOUND, details={"index": index})
        return self.form.rendered_expenses.pop(index)

    def add_receipt(self, amount, receipt_number: str, state: str = "Pendiente") -> PendingReceipt:
        self._require_editable()
        parsed = self._positive_integral(amount)
        if parsed is None or not (receipt_number or "").strip():
            raise _validation_error("Monto válido y número de boleta son requeridos.")
        if state not in ("Pendiente", "Rectificacion"):
            raise _validation_error("Estado de boleta inválido.")
        entry = PendingReceipt(
            amount=parsed,
            receipt_number=receipt_number.strip(),
            state=state,
            timestamp=int(time.time() * 1000),
        )
        self.form.pending_receipts.append(entry)
        return entry

    def remove_receipt(self, index: int) -> PendingReceipt:
        self._require_editable()
        if not 0 <= index < len(self.form.pending_receipts):
            raise AppError(ErrorCatalog.NOT_FOUND, details={"index": index})
        return self.form.pending_receipts.pop(index)

    def set_physical_amount(self, method_id: str, value) -> None:
        self._require_editable()
        text = "" if value is None else str(value).strip()
        cash = cash_method(self.methods)
        if cash is not None and method_id == cash.id:
            self.form.cash_physical_input = text
            return
        detail = self.form.detail_for(method_id)
        if detail is None:
            raise _validation_error(f"Método de pago desconocido: {method_id}")
        detail.physical_input = text

    def summary(self, session: PosSession) -> DiscrepancySummary:
        return compute_discrepancies(session, self.form, self.methods, self.mode)


class ReconciliationEngine:
    def __init__(
        self,
        db,
        pos_client: PosQueryClient,
        drafts: DraftService,
        *,
        payment_methods: list[PaymentMethodConfig],
        redirect_path: str = "/cuadraturas",
        redirect_delay_ms: int = 2500,
    ):
        self.db = db
        self.pos_client = pos_client
        self.drafts = drafts
        self.methods = payment_methods
        self.redirect_path = redirect_path
        self.redirect_delay_ms = redirect_delay_ms
        self.requests = RectificationRequestRepository(db)
        self.phase = LoadPhase.LOADING

    def _advance(self, event: LoadEvent) -> None:
        self.phase = transition(self.phase, event)

    @staticmethod
    def _resolve_session(session_id: int, candidate: PosSession | None) -> PosSession:
        if candidate is not None and candidate.id == session_id:
            return candidate
        return PosSession.placeholder(session_id)

    def _fetch_session(self, session_id: int) -> PosSession:
        raw = self.pos_client.fetch_session(session_id)
        if raw is None:
            raise AppError(ErrorCatalog.SESSION_NOT_FOUND, details={"session_id": session_id})
        try:
            return PosSession.model_validate(raw)
        except ValidationError as exc:
            raise AppError(
                ErrorCatalog.NETWORK_FAILURE,
                details={"message": "Sesión inválida recibida del punto de venta", "session_id": session_id},
            ) from exc

    def _latest_for_session(self, session_id: int) -> RectificationRequest | None:
        return latest_requests_by_session(self.requests.list_for_session(session_id)).get(session_id)

    def _resolve_mode(
        self,
        actor: Actor,
        requested: PageMode | None,
        request: RectificationRequest | None,
        has_draft: bool,
    ) -> PageMode:
        if requested is None:
            row = SessionRow(
                session=PosSession.placeholder(0),
                rectification_status=request.status if request is not None else "sin_rectificar",
                has_draft=has_draft,
            )
            requested = select_session_for_rectification(row, actor.role).initial_mode
        if requested == "create" and (request is not None or not is_admin(actor.role)):
            requested = "view_only"
        if requested == "review" and not (
            request is not None and request.status == "pendiente" and is_superadmin(actor.role)
        ):
            requested = "view_only"
        return requested

    def base_form(
        self,
        session: PosSession,
        totals: list[PaymentMethodTotal],
        request: RectificationRequestOut | None,
        mode: PageMode,
    ) -> RectificationForm:
        details = request.details() if request is not None else None
        persisted = details is not None and mode != "create"

        if persisted and details.cash_adjustment is not None:
            cash_input = amount_text(details.cash_adjustment.adjusted_amount)
        else:
            cash_input = amount_text(session.cash_balance_end_real)

        payment_details = []
        for total in totals:
            physical_input = ""
            if mode != "create":
                entry = details.justifications_by_method.get(total.method_name) if details is not None else None
                if entry is not None and entry.physical_amount is not None:
                    physical_input = amount_text(entry.physical_amount)
                else:
                    physical_input = amount_text(total.system_amount)
            payment_details.append(
                PaymentDetail(
                    id=total.method_id,
                    name=total.method_name,
                    system_amount=total.system_amount,
                    physical_input=physical_input,
                )
            )

        justifications = {}
        if details is not None:
            justifications = {
                name: list(entry.justifications) for name, entry in details.justifications_by_method.items()
            }
        return RectificationForm(
            cash_physical_input=cash_input,
            justifications=justifications,
            rendered_expenses=list(details.rendered_expenses) if details is not None else [],
            pending_receipts=list(details.pending_receipts) if details is not None else [],
            payment_details=payment_details,
        )

    def open_session(
        self,
        actor: Actor,
        session_id: int,
        routing: RoutingState | None = None,
        *,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> ReconciliationViewModel:
        routing = routing or RoutingState()
        self.phase = LoadPhase.LOADING
        try:
            if session_id <= 0:
                raise AppError(ErrorCatalog.SESSION_NOT_FOUND, details={"session_id": session_id})
            session = self._resolve_session(session_id, routing.session_initial_data)
            totals = totals_by_method(self.methods, self.pos_client.fetch_session_payments(session.id))

            notice = None
            latest = self._latest_for_session(session_id)
            request = latest
            if routing.existing_request_id:
                request = self.requests.get_by_id(routing.existing_request_id)
                if request is None or request.session_id != session_id:
                    request = None
                    if is_admin(actor.role) and latest is None:
                        notice = ErrorCatalog.REQUEST_NOT_FOUND.message
                    else:
                        raise AppError(
                            ErrorCatalog.REQUEST_NOT_FOUND,
                            details={"request_id": routing.existing_request_id, "session_id": session_id},
                        )

            requested_mode = "create" if notice else routing.mode
            mode = self._resolve_mode(actor, requested_mode, request, routing.view_draft)
            request_out = RectificationRequestOut.model_validate(request) if request is not None else None
            form = self.base_form(session, totals, request_out, mode)
            self._advance(LoadEvent.BASE_LOADED)

            expected = routing.view_draft or routing.has_draft
            draft = self.drafts.load_draft(session_id, expected=expected)
            if draft is not None:
                form = merge_draft(form, draft.payload)

            if is_cancelled is not None and is_cancelled():
                raise AppError(ErrorCatalog.LOAD_CANCELLED, details={"session_id": session_id})

            view = ReconciliationViewModel(
                session=session,
                mode=mode,
                title=page_title(mode, session, request_out),
                existing_request=request_out,
                payment_totals=totals,
                form=form,
                summary=compute_discrepancies(session, form, self.methods, mode),
                actions=action_availability(mode, actor.role, request_out),
                draft_applied=draft is not None,
                last_edited=draft.last_edited if draft is not None else None,
                decision_comment=(request_out.rejection_reason or "") if request_out and mode != "create" else "",
                notice=notice,
            )
            self._advance(LoadEvent.DRAFT_MERGED)
        except AppError as exc:
            self._advance(LoadEvent.FAILED)
            log_json(
                logger,
                {
                    "event": "session_load_failed",
                    "session_id": session_id,
                    "error_code": exc.error.code,
                    "trace_id": actor.trace_id,
                },
                level=logging.WARNING,
            )
            raise
        log_json(
            logger,
            {
                "event": "session_loaded",
                "session_id": session_id,
                "mode": mode,
                "draft_applied": view.draft_applied,
                "trace_id": actor.trace_id,
            },
        )
        return view

    def preview(self, session_id: int, payload: PreviewRequest) -> DiscrepancySummary:
        session = self._resolve_session(session_id, payload.session)
        return compute_discrepancies(session, payload.form, self.methods, payload.mode)

    def submit_rectification(
        self, actor: Actor, session_id: int, payload: SubmitRectificationRequest
    ) -> SubmitRectificationResponse:
        if not is_admin(actor.role):
            raise AppError(
                ErrorCatalog.PERMISSION_DENIED,
                details={"message": "Solo los administradores pueden enviar solicitudes de rectificación."},
            )
        if self.requests.list_for_session(session_id):
            raise AppError(ErrorCatalog.REQUEST_ALREADY_EXISTS, details={"session_id": session_id})

        session = self._fetch_session(session_id)
        check = check_submission(payload.form, self.methods, session)
        if not check.ok:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={
                    "message": check.message,
                    "issues": [{"field": issue.field, "message": issue.message} for issue in check.issues],
                },
            )
        if not payload.confirmed:
            raise AppError(ErrorCatalog.CONFIRMATION_REQUIRED, details={"session_id": session_id})

        details = build_rectification_details(payload.form, self.methods, check)
        store_id = _int_or_none(session.store_id)
        record = RectificationRequest(
            session_id=session.id,
            session_name=session.name,
            original_user=session.user_ref,
            original_start_at=session.start_at,
            original_stop_at=session.stop_at,
            original_store_id=store_id,
            original_store_name=session.store_label if session.store_ref else "Desconocido",
            original_cash_balance_start=session.cash_balance_start,
            original_cash_balance_end_real=session.cash_balance_end_real,
            original_theoretical_cash=session.cash_balance_end_theoretical,
            original_cash_difference=session.cash_difference,
            original_cash_real_transaction=session.cash_real_transaction,
            rectification_details=details.to_ledger(),
            submitted_by_email=actor.email,
            submitted_by_uid=actor.uid,
            submitted_at=datetime.utcnow(),
            status="pendiente",
            store_id_submitter=store_id,
        )
        try:
            record = self.requests.create(record)
        except SQLAlchemyError as exc:
            self.db.rollback()
            log_json(
                logger,
                {"event": "rectification_submit_failed", "session_id": session_id, "trace_id": actor.trace_id},
                level=logging.ERROR,
            )
            raise AppError(ErrorCatalog.PERSISTENCE_FAILURE, details={"message": str(exc)}) from exc

        try:
            self.drafts.clear_draft(session_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to clear draft after submit", extra={"session_id": session_id})

        request_out = RectificationRequestOut.model_validate(record)
        AuditService(self.db).record_event(
            AuditEventPayload(
                actor=actor,
                action="rectification.submit",
                entity_type="rectification_request",
                entity_id=request_out.id,
                metadata={"session_id": session_id, "status": request_out.status},
            )
        )
        log_json(
            logger,
            {
                "event": "rectification_submitted",
                "session_id": session_id,
                "request_id": request_out.id,
                "user_id": actor.uid,
                "trace_id": actor.trace_id,
            },
        )
        return SubmitRectificationResponse(
            request=request_out,
            message=SUBMIT_SUCCESS_MESSAGE,
            redirect_to=self.redirect_path,
            redirect_delay_ms=self.redirect_delay_ms,
        )

    def decide(self, actor: Actor, request_id: str, payload: DecisionRequest) -> DecisionResponse:
        if not is_superadmin(actor.role):
            raise AppError(
                ErrorCatalog.PERMISSION_DENIED,
                details={"message": "Solo los superadministradores pueden resolver solicitudes."},
            )
        record = self.requests.get_by_id(request_id)
        if record is None:
            raise AppError(ErrorCatalog.REQUEST_NOT_FOUND, details={"request_id": request_id})
        if record.status != "pendiente":
            raise AppError(ErrorCatalog.REQUEST_ALREADY_DECIDED, details={"request_id": request_id, "status": record.status})

        comment = (payload.comment or "").strip()
        if payload.action == "rechazada" and not comment:
            raise _validation_error("Motivo de rechazo es requerido.")
        if len(comment) > 100:
            raise _validation_error("El motivo de rechazo no puede exceder los 100 caracteres.")

        updates = {
            "status": payload.action,
            "approved_by_uid": actor.uid,
            "approved_by_name": actor.label,
            "approved_at": datetime.utcnow(),
            "rejection_reason": comment or None,
        }
        before = RectificationRequestOut.model_validate(record)
        try:
            applied = self.requests.decide_if_pending(record.id, **updates)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise AppError(ErrorCatalog.PERSISTENCE_FAILURE, details={"message": str(exc)}) from exc
        if not applied:
            raise AppError(ErrorCatalog.REQUEST_ALREADY_DECIDED, details={"request_id": request_id})

        patched = before.model_copy(update=updates)
        AuditService(self.db).record_event(
            AuditEventPayload(
                actor=actor,
                action="rectification.decide",
                entity_type="rectification_request",
                entity_id=patched.id,
                metadata={"session_id": patched.session_id, "status": payload.action},
            )
        )
        log_json(
            logger,
            {
                "event": "rectification_decided",
                "request_id": patched.id,
                "status": payload.action,
                "user_id": actor.uid,
                "trace_id": actor.trace_id,
            },
        )
        return DecisionResponse(request=patched, message=f"Solicitud {payload.action} con éxito.")

    def workspace(
        self, form: RectificationForm, *, mode: PageMode, role: str | None, session: PosSession | None = None
    ) -> ReconciliationWorkspace:
        return ReconciliationWorkspace(form, mode=mode, role=role, methods=self.methods, session=session)


__all__ = [
    "LoadPhase",
    "LoadEvent",
    "InvalidTransition",
    "transition",
    "ReconciliationEngine",
    "ReconciliationWorkspace",
]
