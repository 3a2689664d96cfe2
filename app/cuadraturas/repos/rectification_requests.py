import uuid
from datetime import datetime

from sqlalchemy import select, update

from app.cuadraturas.db.models import RectificationRequest


class RectificationRequestRepository:
    def __init__(self, db):
        self.db = db

    def get_by_id(self, request_id: str | uuid.UUID) -> RectificationRequest | None:
        try:
            key = request_id if isinstance(request_id, uuid.UUID) else uuid.UUID(str(request_id))
        except ValueError:
            return None
        return self.db.get(RectificationRequest, key)

    def list_all(self) -> list[RectificationRequest]:
        return list(self.db.execute(select(RectificationRequest)).scalars().all())

    def list_for_session(self, session_id: int) -> list[RectificationRequest]:
        stmt = select(RectificationRequest).where(RectificationRequest.session_id == session_id)
        return list(self.db.execute(stmt).scalars().all())

    def create(self, request: RectificationRequest) -> RectificationRequest:
        self.db.add(request)
        self.db.commit()
        self.db.refresh(request)
        return request

    def decide_if_pending(
        self,
        request_id: uuid.UUID,
        *,
        status: str,
        approved_by_uid: str | None,
        approved_by_name: str | None,
        approved_at: datetime,
        rejection_reason: str | None,
    ) -> bool:
        stmt = (
            update(RectificationRequest)
            .where(RectificationRequest.id == request_id, RectificationRequest.status == "pendiente")
            .values(
                status=status,
                approved_by_uid=approved_by_uid,
                approved_by_name=approved_by_name,
                approved_at=approved_at,
                rejection_reason=rejection_reason,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1
