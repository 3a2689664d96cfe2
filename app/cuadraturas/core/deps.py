from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError

from app.cuadraturas.clients.pos_query import PosQueryClient, build_pos_client
from app.cuadraturas.core.config import settings
from app.cuadraturas.core.context import Actor, build_actor
from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog
from app.cuadraturas.core.scope import RECONCILIATION_ROLES, enforce_role
from app.cuadraturas.core.security import TokenData, decode_token, oauth2_scheme
from app.cuadraturas.db.session import get_db
from app.cuadraturas.services.drafts import DraftService
from app.cuadraturas.services.reconciliation import load_payment_methods
from app.cuadraturas.services.reconciliation_engine import ReconciliationEngine
from app.cuadraturas.services.session_aggregator import SessionAggregator


def get_current_token_data(token: str = Depends(oauth2_scheme)) -> TokenData:
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, ValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def get_current_actor(request: Request, token_data: TokenData = Depends(get_current_token_data)) -> Actor:
    actor = build_actor(
        uid=token_data.sub,
        email=token_data.email,
        role=token_data.role,
        display_name=token_data.display_name,
        store_id=token_data.store_id,
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.actor = actor
    request.state.user_id = actor.uid
    return actor


def require_reconciliation_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    enforce_role(actor, RECONCILIATION_ROLES)
    return actor


def get_pos_client() -> PosQueryClient:
    return build_pos_client(settings)


def get_draft_service(db=Depends(get_db)) -> DraftService:
    return DraftService(
        db,
        lookup_attempts=settings.DRAFT_LOOKUP_ATTEMPTS,
        lookup_delay_seconds=settings.DRAFT_LOOKUP_DELAY_SECONDS,
    )


def get_session_aggregator(db=Depends(get_db), pos_client: PosQueryClient = Depends(get_pos_client)) -> SessionAggregator:
    return SessionAggregator(db, pos_client)


def get_reconciliation_engine(
    db=Depends(get_db),
    pos_client: PosQueryClient = Depends(get_pos_client),
    drafts: DraftService = Depends(get_draft_service),
) -> ReconciliationEngine:
    return ReconciliationEngine(
        db,
        pos_client,
        drafts,
        payment_methods=load_payment_methods(settings.PAYMENT_METHODS),
        redirect_path=settings.SUBMIT_REDIRECT_PATH,
        redirect_delay_ms=settings.SUBMIT_REDIRECT_DELAY_MS,
    )


__all__ = [
    "get_current_token_data",
    "get_current_actor",
    "require_reconciliation_actor",
    "get_pos_client",
    "get_draft_service",
    "get_session_aggregator",
    "get_reconciliation_engine",
]
