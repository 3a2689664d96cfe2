from fastapi import APIRouter, Depends, Query

from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.deps import get_reconciliation_engine, get_session_aggregator, require_reconciliation_actor
from app.cuadraturas.schemas.errors import error_responses
from app.cuadraturas.schemas.rectifications import DiscrepancySummary, PreviewRequest, ReconciliationViewModel
from app.cuadraturas.schemas.sessions import RoutingState, SessionListResponse, StatusFilter
from app.cuadraturas.services.reconciliation_engine import ReconciliationEngine
from app.cuadraturas.services.session_aggregator import SessionAggregator

router = APIRouter()


@router.get(
    "/cuadraturas/sessions",
    response_model=SessionListResponse,
    responses=error_responses(401, 403, 422, 502),
)
def list_sessions(
    status: StatusFilter = Query(""),
    actor: Actor = Depends(require_reconciliation_actor),
    aggregator: SessionAggregator = Depends(get_session_aggregator),
):
    return aggregator.list_sessions(actor, status)


@router.post(
    "/cuadraturas/sessions/{session_id}/open",
    response_model=ReconciliationViewModel,
    responses=error_responses(401, 403, 404, 502),
)
def open_session(
    session_id: int,
    routing: RoutingState | None = None,
    actor: Actor = Depends(require_reconciliation_actor),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    return engine.open_session(actor, session_id, routing)


@router.post(
    "/cuadraturas/sessions/{session_id}/preview",
    response_model=DiscrepancySummary,
    responses=error_responses(401, 403, 422),
)
def preview_session(
    session_id: int,
    payload: PreviewRequest,
    actor: Actor = Depends(require_reconciliation_actor),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    return engine.preview(session_id, payload)
