import logging
from dataclasses import dataclass
from datetime import datetime

from app.cuadraturas.core.context import Actor
from app.cuadraturas.db.models import AuditEvent
from app.cuadraturas.repos.audit import AuditRepository

logger = logging.getLogger(__name__)


@dataclass
class AuditEventPayload:
    actor: Actor
    action: str
    entity_type: str
    entity_id: str | None
    metadata: dict | None
    result: str = "success"


class AuditService:
    """Best-effort audit trail for ledger writes.

    A failed audit write is logged and rolled back; it never fails the caller.
    """

    def __init__(self, db):
        self.db = db
        self.repo = AuditRepository(db)

    def record_event(self, payload: AuditEventPayload) -> None:
        try:
            self.repo.add(
                AuditEvent(
                    actor_uid=payload.actor.uid,
                    actor_email=payload.actor.email,
                    actor_role=payload.actor.role,
                    action=payload.action,
                    entity_type=payload.entity_type,
                    entity_id=payload.entity_id,
                    trace_id=payload.actor.trace_id or None,
                    event_metadata=dict(payload.metadata or {}),
                    result=payload.result,
                    created_at=datetime.utcnow(),
                )
            )
        except Exception:
            self.db.rollback()
            logger.exception(
                "Failed to write audit event",
                extra={"action": payload.action, "trace_id": payload.actor.trace_id, "entity_id": payload.entity_id},
            )
