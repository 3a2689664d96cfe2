from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from app.cuadraturas.schemas.rectifications import LastEdited, RectificationForm


class DraftSaveRequest(BaseModel):
    form: RectificationForm


class DraftOut(BaseModel):
    session_id: int
    payload: dict[str, Any] = Field(default_factory=dict)
    last_edited: LastEdited | None = None


class DraftSaveResponse(BaseModel):
    draft: DraftOut
    message: str
