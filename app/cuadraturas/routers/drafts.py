from fastapi import APIRouter, Depends

from app.cuadraturas.core.context import Actor
from app.cuadraturas.core.deps import get_draft_service, require_reconciliation_actor
from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog
from app.cuadraturas.schemas.drafts import DraftOut, DraftSaveRequest, DraftSaveResponse
from app.cuadraturas.schemas.errors import error_responses
from app.cuadraturas.services.drafts import DraftService

router = APIRouter()


@router.put(
    "/cuadraturas/sessions/{session_id}/draft",
    response_model=DraftSaveResponse,
    responses=error_responses(401, 403, 409, 503),
)
def save_draft(
    session_id: int,
    payload: DraftSaveRequest,
    actor: Actor = Depends(require_reconciliation_actor),
    drafts: DraftService = Depends(get_draft_service),
):
    draft = drafts.save_draft(actor, session_id, payload.form)
    return DraftSaveResponse(draft=draft, message="Borrador guardado.")


@router.get(
    "/cuadraturas/sessions/{session_id}/draft",
    response_model=DraftOut,
    responses=error_responses(401, 403, 404),
)
def get_draft(
    session_id: int,
    expected: bool = False,
    actor: Actor = Depends(require_reconciliation_actor),
    drafts: DraftService = Depends(get_draft_service),
):
    draft = drafts.load_draft(session_id, expected=expected)
    if draft is None:
        raise AppError(ErrorCatalog.NOT_FOUND, details={"session_id": session_id})
    return draft
