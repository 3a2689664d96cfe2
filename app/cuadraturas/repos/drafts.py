from sqlalchemy import delete, select

from app.cuadraturas.db.models import RectificationDraft


class DraftRepository:
    def __init__(self, db):
        self.db = db

    def get(self, session_id: int) -> RectificationDraft | None:
        return self.db.get(RectificationDraft, session_id)

    def session_ids(self) -> set[int]:
        return set(self.db.execute(select(RectificationDraft.session_id)).scalars().all())

    def upsert(self, draft: RectificationDraft) -> RectificationDraft:
        merged = self.db.merge(draft)
        self.db.commit()
        self.db.refresh(merged)
        return merged

    def delete(self, session_id: int) -> None:
        self.db.execute(delete(RectificationDraft).where(RectificationDraft.session_id == session_id))
        self.db.commit()
