from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator, model_validator

from app.cuadraturas.schemas.sessions import PageMode, PosSession


def _amount_json(value: Decimal | None):
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# Ledger documents keep amounts as plain JSON numbers.
Amount = Annotated[Decimal, PlainSerializer(_amount_json, when_used="json")]

JustificationKind = Literal["faltante", "sobrante"]
ReceiptState = Literal["Pendiente", "Rectificacion"]
DecisionAction = Literal["aprobada", "rechazada"]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _positive_integral(value: Decimal) -> Decimal:
    if value <= 0:
        raise ValueError("El monto debe ser mayor a cero")
    if value != value.to_integral_value():
        raise ValueError("El monto debe ser un número entero")
    return value


class Justification(WireModel):
    amount: Amount = Field(alias="monto")
    reason: str = Field(alias="motivo", min_length=1, max_length=100)
    kind: JustificationKind = Field(default="faltante", alias="tipo")
    timestamp: int | None = None

    @field_validator("reason", mode="before")
    @classmethod
    def _strip_reason(cls, value):
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _apply_sign(self):
        # shortages are stored positive, surpluses negative
        magnitude = _positive_integral(abs(self.amount))
        self.amount = magnitude if self.kind == "faltante" else -magnitude
        return self


class RenderedExpense(WireModel):
    amount: Amount = Field(alias="monto")
    voucher_number: str = Field(alias="comprobante", min_length=1)
    reason: str = Field(alias="motivo", min_length=1, max_length=50)
    timestamp: int | None = None

    @field_validator("voucher_number", "reason", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if isinstance(value, (int, float)):
            value = str(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Decimal) -> Decimal:
        return _positive_integral(value)


class PendingReceipt(WireModel):
    amount: Amount = Field(alias="monto")
    receipt_number: str = Field(alias="numeroBoleta", min_length=1)
    state: ReceiptState = Field(default="Pendiente", alias="estadoBoleta")
    timestamp: int | None = None

    @field_validator("receipt_number", mode="before")
    @classmethod
    def _strip_number(cls, value):
        if isinstance(value, (int, float)):
            value = str(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("amount")
    @classmethod
    def _check_amount(cls, value: Decimal) -> Decimal:
        return _positive_integral(value)


class PaymentMethodConfig(BaseModel):
    id: str
    odoo_names: list[str]
    display_name: str
    is_cash: bool = False


class PaymentMethodTotal(BaseModel):
    method_id: str
    method_name: str
    system_amount: Amount = Decimal("0")


def _input_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


class PaymentDetail(WireModel):
    id: str
    name: str
    system_amount: Amount = Field(default=Decimal("0"), alias="sistema")
    physical_input: str = Field(default="", alias="fisicoEditable")

    @field_validator("physical_input", mode="before")
    @classmethod
    def _as_text(cls, value):
        return _input_text(value)


class RectificationForm(WireModel):
    """Editable state of the reconciliation page."""

    cash_physical_input: str = Field(default="", alias="nuevoSaldoFinalRealEfectivo")
    justifications: dict[str, list[Justification]] = Field(default_factory=dict, alias="itemJustifications")
    rendered_expenses: list[RenderedExpense] = Field(default_factory=list, alias="gastosRendidos")
    pending_receipts: list[PendingReceipt] = Field(default_factory=list, alias="boletasPendientes")
    payment_details: list[PaymentDetail] = Field(default_factory=list, alias="paymentDetails")

    @field_validator("cash_physical_input", mode="before")
    @classmethod
    def _as_text(cls, value):
        return _input_text(value)

    def detail_for(self, method_id: str) -> PaymentDetail | None:
        for detail in self.payment_details:
            if detail.id == method_id:
                return detail
        return None


class CashAdjustment(WireModel):
    adjusted_amount: Amount = Field(alias="montoAjustado")


class MethodEntry(WireModel):
    physical_amount: Amount | None = Field(default=None, alias="montoFisicoIngresado")
    justifications: list[Justification] = Field(default_factory=list, alias="justificaciones")


class RectificationDetails(WireModel):
    cash_adjustment: CashAdjustment | None = Field(default=None, alias="ajusteSaldoEfectivo")
    justifications_by_method: dict[str, MethodEntry] = Field(default_factory=dict, alias="justificacionesPorMetodo")
    rendered_expenses: list[RenderedExpense] = Field(default_factory=list, alias="gastosRendidos")
    pending_receipts: list[PendingReceipt] = Field(default_factory=list, alias="boletasPendientesRegistradas")

    def to_ledger(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RectificationRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: int
    session_name: str | None = None
    original_user: list[Any] | None = None
    original_start_at: str | None = None
    original_stop_at: str | None = None
    original_store_id: int | None = None
    original_store_name: str | None = None
    original_cash_balance_start: Amount | None = None
    original_cash_balance_end_real: Amount | None = None
    original_theoretical_cash: Amount | None = None
    original_cash_difference: Amount | None = None
    original_cash_real_transaction: Amount | None = None
    rectification_details: dict[str, Any] = Field(default_factory=dict)
    submitted_by_email: str | None = None
    submitted_by_uid: str | None = None
    submitted_at: datetime
    status: str
    store_id_submitter: int | None = None
    approved_by_uid: str | None = None
    approved_by_name: str | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value):
        return str(value)

    def details(self) -> RectificationDetails:
        return RectificationDetails.model_validate(self.rectification_details or {})


class DiscrepancyRow(BaseModel):
    method_id: str
    method_name: str
    is_cash: bool = False
    system_amount: Amount
    physical_amount: Amount
    gross_difference: Amount
    justified_total: Amount
    net_difference: Amount
    justifications: list[Justification] = Field(default_factory=list)
    justifiable: bool = False
    review_flag: Literal["ok", "attention"] | None = None


class CashDiscrepancy(DiscrepancyRow):
    rendered_expenses_total: Amount
    receipt_net_effect: Amount
    gross_without_receipts: Amount


class DiscrepancySummary(BaseModel):
    cash: CashDiscrepancy | None = None
    methods: list[DiscrepancyRow] = Field(default_factory=list)
    system_expenses: Amount
    rendered_expenses_total: Amount
    expense_difference: Amount
    receipt_net_effect: Amount


class ActionAvailability(BaseModel):
    can_edit: bool = False
    can_save_draft: bool = False
    can_submit: bool = False
    can_decide: bool = False


class LastEdited(BaseModel):
    email: str | None = None
    timestamp: int | None = None


class ReconciliationViewModel(BaseModel):
    session: PosSession
    mode: PageMode
    title: str
    existing_request: RectificationRequestOut | None = None
    payment_totals: list[PaymentMethodTotal] = Field(default_factory=list)
    form: RectificationForm
    summary: DiscrepancySummary
    actions: ActionAvailability
    draft_applied: bool = False
    last_edited: LastEdited | None = None
    decision_comment: str = ""
    notice: str | None = None


class PreviewRequest(BaseModel):
    session: PosSession | None = None
    mode: PageMode = "create"
    form: RectificationForm = Field(default_factory=RectificationForm)


class SubmitRectificationRequest(BaseModel):
    form: RectificationForm
    confirmed: bool = False


class SubmitRectificationResponse(BaseModel):
    request: RectificationRequestOut
    message: str
    mode: PageMode = "view_only"
    redirect_to: str
    redirect_delay_ms: int


class DecisionRequest(BaseModel):
    action: DecisionAction
    comment: str | None = None


class DecisionResponse(BaseModel):
    request: RectificationRequestOut
    message: str
    mode: PageMode = "view_only"
