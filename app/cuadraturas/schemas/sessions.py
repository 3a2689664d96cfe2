from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

RectificationStatus = Literal["sin_rectificar", "pendiente", "aprobada", "rechazada"]
StatusFilter = Literal["", "aprobada", "rechazada", "pendiente", "borrador", "sin_rectificar"]
PageMode = Literal["create", "review", "view_only"]

UNKNOWN_STORE_LABEL = "Local Desconocido"


class PosSession(BaseModel):
    """A POS session as returned by the external accounting source.

    Sessions built from a bare route id only carry ``id`` and ``name``; every
    balance reads as zero through the ``*_amount`` helpers.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str | None = None
    user_ref: list[Any] | None = Field(default=None, validation_alias=AliasChoices("user_ref", "user_id"))
    start_at: str | None = None
    stop_at: str | None = None
    store_ref: list[Any] | None = Field(default=None, validation_alias=AliasChoices("store_ref", "crm_team_id"))
    cash_balance_start: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("cash_balance_start", "cash_register_balance_start")
    )
    cash_balance_end_real: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("cash_balance_end_real", "cash_register_balance_end_real")
    )
    cash_balance_end_theoretical: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("cash_balance_end_theoretical", "cash_register_balance_end")
    )
    cash_difference: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("cash_difference", "cash_register_difference")
    )
    cash_real_transaction: Decimal | None = None

    @model_validator(mode="before")
    @classmethod
    def _false_means_empty(cls, data):
        # the accounting source sends ``false`` for unset fields
        if isinstance(data, dict):
            return {key: (None if value is False else value) for key, value in data.items()}
        return data

    @classmethod
    def placeholder(cls, session_id: int) -> "PosSession":
        return cls(id=session_id, name=f"Sesión {session_id}")

    @property
    def store_id(self) -> int | None:
        if self.store_ref:
            return self.store_ref[0]
        return None

    @property
    def store_label(self) -> str:
        if self.store_ref and len(self.store_ref) > 1 and self.store_ref[1]:
            return str(self.store_ref[1])
        return UNKNOWN_STORE_LABEL

    @property
    def theoretical_cash_amount(self) -> Decimal:
        return self.cash_balance_end_theoretical or Decimal("0")

    @property
    def counted_cash_amount(self) -> Decimal:
        return self.cash_balance_end_real or Decimal("0")

    @property
    def system_expenses_amount(self) -> Decimal:
        return abs(self.cash_real_transaction or Decimal("0"))


class SessionRow(BaseModel):
    session: PosSession
    rectification_status: RectificationStatus = "sin_rectificar"
    rectification_request_id: str | None = None
    submitted_by_uid: str | None = None
    has_draft: bool = False
    can_interact: bool = False


class DayGroup(BaseModel):
    day: str
    sessions: list[SessionRow]


class MonthGroup(BaseModel):
    month: str
    display: str
    days: list[DayGroup]


class StoreGroup(BaseModel):
    store: str
    months: list[MonthGroup]


class HierarchicalView(BaseModel):
    stores: list[StoreGroup] = Field(default_factory=list)

    def rows(self) -> list[SessionRow]:
        return [
            row
            for store in self.stores
            for month in store.months
            for day in month.days
            for row in day.sessions
        ]


class SessionListResponse(BaseModel):
    status: StatusFilter = ""
    total: int
    view: HierarchicalView


class SelectionDecision(BaseModel):
    initial_mode: PageMode
    view_draft: bool = False


class RoutingState(BaseModel):
    """What the list page hands to the reconciliation page."""

    session_initial_data: PosSession | None = None
    mode: PageMode | None = None
    existing_request_id: str | None = None
    view_draft: bool = False
    has_draft: bool = False
