from fastapi import APIRouter, Depends

from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.deps import get_reconciliation_engine, require_reconciliation_actor
from app.cuadraturas.schemas.errors import error_responses
from app.cuadraturas.schemas.rectifications import (
    DecisionRequest,
    DecisionResponse,
    SubmitRectificationRequest,
    SubmitRectificationResponse,
)
from app.cuadraturas.services.reconciliation_engine import ReconciliationEngine

router = APIRouter()


@router.post(
    "/cuadraturas/sessions/{session_id}/rectifications",
    response_model=SubmitRectificationResponse,
    status_code=201,
    responses=error_responses(401, 403, 409, 422, 503),
)
def submit_rectification(
    session_id: int,
    payload: SubmitRectificationRequest,
    actor: Actor = Depends(require_reconciliation_actor),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    return engine.submit_rectification(actor, session_id, payload)


@router.post(
    "/cuadraturas/rectifications/{request_id}/decision",
    response_model=DecisionResponse,
    responses=error_responses(401, 403, 404, 409, 422, 503),
)
def decide_rectification(
    request_id: str,
    payload: DecisionRequest,
    actor: Actor = Depends(require_reconciliation_actor),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    return engine.decide(actor, request_id, payload)
