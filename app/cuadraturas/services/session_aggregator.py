from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from pydantic import ValidationError

from app.cuadraturas.clients.pos_query import PosQueryClient
from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.logging import log_json
from app.cuadraturas.core.scope import is_admin, is_superadmin
from app.cuadraturas.db.models import RectificationRequest
from app.cuadraturas.repos.rectification_requests import RectificationRequestRepository
from app.cuadraturas.schemas.sessions import (
    DayGroup,
    HierarchicalView,
    MonthGroup,
    PosSession,
    SelectionDecision,
    SessionListResponse,
    SessionRow,
    StoreGroup,
)
from app.cuadraturas.services.drafts import DraftService

logger = logging.getLogger("cuadraturas.sessions")

MONTH_NAMES = [
    "Enero",
    "Febrero",
    "Marzo",
    "Abril",
    "Mayo",
    "Junio",
    "Julio",
    "Agosto",
    "Septiembre",
    "Octubre",
    "Noviembre",
    "Diciembre",
]
UNRECTIFIED = "sin_rectificar"
DRAFT_FILTER = "borrador"


def parse_start_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def month_display(month_key: str) -> str:
    year, month = month_key.split("-")
    return f"{MONTH_NAMES[int(month) - 1]} {year}"


def latest_requests_by_session(requests: Iterable[RectificationRequest]) -> dict[int, RectificationRequest]:
    latest: dict[int, RectificationRequest] = {}
    for request in requests:
        current = latest.get(request.session_id)
        if current is None or request.submitted_at > current.submitted_at:
            latest[request.session_id] = request
    return latest


def can_interact(actor: Actor, status: str, submitted_by_uid: str | None) -> bool:
    if is_superadmin(actor.role):
        return True
    if is_admin(actor.role):
        return status == UNRECTIFIED or (status == "pendiente" and submitted_by_uid == actor.uid)
    return False


def group_sessions(rows: Iterable[SessionRow]) -> HierarchicalView:
    """Bucket rows store -> YYYY-MM -> day, dropping rows without a usable start time."""
    tree: dict[str, dict[str, dict[str, list[SessionRow]]]] = {}
    for row in rows:
        started = parse_start_at(row.session.start_at)
        if started is None:
            continue
        month_key = f"{started.year:04d}-{started.month:02d}"
        day_key = f"{started.day:02d}"
        tree.setdefault(row.session.store_label, {}).setdefault(month_key, {}).setdefault(day_key, []).append(row)

    stores = []
    for store in sorted(tree):
        months = []
        for month_key in sorted(tree[store], reverse=True):
            days = [
                DayGroup(day=day_key, sessions=tree[store][month_key][day_key])
                for day_key in sorted(tree[store][month_key], key=int, reverse=True)
            ]
            months.append(MonthGroup(month=month_key, display=month_display(month_key), days=days))
        stores.append(StoreGroup(store=store, months=months))
    return HierarchicalView(stores=stores)


def _row_matches(row: SessionRow, status: str) -> bool:
    if status == DRAFT_FILTER:
        return row.rectification_status == UNRECTIFIED and row.has_draft
    return row.rectification_status == status


def filter_view(view: HierarchicalView, status: str) -> HierarchicalView:
    if not status:
        return view.model_copy(deep=True)
    stores = []
    for store in view.stores:
        months = []
        for month in store.months:
            days = []
            for day in month.days:
                sessions = [row for row in day.sessions if _row_matches(row, status)]
                if sessions:
                    days.append(DayGroup(day=day.day, sessions=sessions))
            if days:
                months.append(MonthGroup(month=month.month, display=month.display, days=days))
        if months:
            stores.append(StoreGroup(store=store.store, months=months))
    return HierarchicalView(stores=stores)


def select_session_for_rectification(row: SessionRow, role: str | None) -> SelectionDecision:
    status = row.rectification_status
    if status == UNRECTIFIED:
        if is_admin(role):
            return SelectionDecision(initial_mode="create", view_draft=False)
        if is_superadmin(role):
            return SelectionDecision(initial_mode="view_only", view_draft=row.has_draft)
    elif status == "pendiente" and is_superadmin(role):
        return SelectionDecision(initial_mode="review", view_draft=False)
    return SelectionDecision(initial_mode="view_only", view_draft=False)


class SessionAggregator:
    def __init__(self, db, pos_client: PosQueryClient, drafts: DraftService | None = None):
        self.db = db
        self.pos_client = pos_client
        self.requests = RectificationRequestRepository(db)
        self.drafts = drafts or DraftService(db)

    def _draft_session_ids(self) -> set[int]:
        try:
            return self.drafts.draft_session_ids()
        except Exception:
            self.db.rollback()
            logger.exception("Draft lookup failed; listing sessions without draft markers")
            return set()

    def build_rows(self, actor: Actor) -> list[SessionRow]:
        raw_sessions = self.pos_client.fetch_sessions()
        latest = latest_requests_by_session(self.requests.list_all())
        drafted = self._draft_session_ids()
        rows = []
        for raw in raw_sessions:
            try:
                session = PosSession.model_validate(raw)
            except ValidationError:
                log_json(logger, {"event": "pos_session_skipped", "raw_id": raw.get("id")}, level=logging.WARNING)
                continue
            request = latest.get(session.id)
            status = request.status if request is not None else UNRECTIFIED
            submitted_by_uid = request.submitted_by_uid if request is not None else None
            rows.append(
                SessionRow(
                    session=session,
                    rectification_status=status,
                    rectification_request_id=str(request.id) if request is not None else None,
                    submitted_by_uid=submitted_by_uid,
                    has_draft=request is None and session.id in drafted,
                    can_interact=can_interact(actor, status, submitted_by_uid),
                )
            )
        return rows

    def load_sessions(self, actor: Actor) -> HierarchicalView:
        view = group_sessions(self.build_rows(actor))
        log_json(
            logger,
            {"event": "sessions_loaded", "user_id": actor.uid, "sessions": len(view.rows()), "trace_id": actor.trace_id},
        )
        return view

    def list_sessions(self, actor: Actor, status: str = "") -> SessionListResponse:
        view = filter_view(self.load_sessions(actor), status)
        return SessionListResponse(status=status, total=len(view.rows()), view=view)
