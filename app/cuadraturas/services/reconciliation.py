from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from app.cuadraturas.schemas.rectifications import (
    CashAdjustment,
    CashDiscrepancy,
    DiscrepancyRow,
    DiscrepancySummary,
    Justification,
    MethodEntry,
    PaymentDetail,
    PaymentMethodConfig,
    PaymentMethodTotal,
    RectificationDetails,
    RectificationForm,
)
from app.cuadraturas.schemas.sessions import PageMode, PosSession

ZERO = Decimal("0")
_THOUSANDS = re.compile(r"^-?\d{1,3}(\.\d{3})+$")


def load_payment_methods(raw: Iterable[dict[str, Any]]) -> list[PaymentMethodConfig]:
    methods = [PaymentMethodConfig.model_validate(item) for item in raw]
    if sum(1 for method in methods if method.is_cash) > 1:
        raise ValueError("Only one payment method may be flagged as cash")
    return methods


def cash_method(methods: list[PaymentMethodConfig]) -> PaymentMethodConfig | None:
    return next((method for method in methods if method.is_cash), None)


def non_cash_methods(methods: list[PaymentMethodConfig]) -> list[PaymentMethodConfig]:
    return [method for method in methods if not method.is_cash]


def parse_amount(value: Any) -> Decimal | None:
    """Parse a user-entered amount.

    Blank input returns ``None``; anything that is not a number raises
    ``ValueError``. Dots used as thousands separators ("97.000") are accepted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    text = str(value).strip()
    if not text:
        return None
    if _THOUSANDS.match(text):
        text = text.replace(".", "")
    try:
        parsed = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return parsed


def amount_or(value: Any, fallback: Decimal) -> Decimal:
    try:
        parsed = parse_amount(value)
    except ValueError:
        return fallback
    return fallback if parsed is None else parsed


def totals_by_method(methods: list[PaymentMethodConfig], payments: list[dict[str, Any]]) -> list[PaymentMethodTotal]:
    """Sum ``read_group`` rows into one system amount per configured non-cash method."""
    by_label: dict[str, Decimal] = {}
    for row in payments:
        method_ref = row.get("payment_method_id")
        if not isinstance(method_ref, (list, tuple)) or len(method_ref) < 2:
            continue
        label = str(method_ref[1])
        by_label[label] = by_label.get(label, ZERO) + amount_or(row.get("amount"), ZERO)
    totals = []
    for method in non_cash_methods(methods):
        amount = sum((by_label.get(name, ZERO) for name in method.odoo_names), ZERO)
        totals.append(PaymentMethodTotal(method_id=method.id, method_name=method.display_name, system_amount=amount))
    return totals


def justified_total(justifications: Iterable[Justification]) -> Decimal:
    return sum((item.amount for item in justifications), ZERO)


def expected_kind(gross: Decimal) -> str | None:
    """Justification kind that closes ``gross``; ``None`` when there is no gap."""
    if gross < 0:
        return "faltante"
    if gross > 0:
        return "sobrante"
    return None


def closing_total(gross: Decimal, justifications: Iterable[Justification]) -> Decimal:
    """Justified amount applied against ``gross``, always pulling it toward zero."""
    justifications = list(justifications)
    if gross == 0:
        return justified_total(justifications)
    magnitude = sum((abs(item.amount) for item in justifications), ZERO)
    return magnitude if gross < 0 else -magnitude


def receipt_net_effect(form: RectificationForm) -> Decimal:
    total = ZERO
    for receipt in form.pending_receipts:
        total += -receipt.amount if receipt.state == "Rectificacion" else receipt.amount
    return total


def _review_flag(mode: PageMode, justifications: list[Justification], net: Decimal):
    if mode != "review":
        return None
    if justifications:
        return None
    return "attention" if net != 0 else "ok"


def compute_discrepancies(
    session: PosSession,
    form: RectificationForm,
    methods: list[PaymentMethodConfig],
    mode: PageMode,
) -> DiscrepancySummary:
    rendered_total = sum((expense.amount for expense in form.rendered_expenses), ZERO)
    receipts = receipt_net_effect(form)
    system_expenses = session.system_expenses_amount

    cash_row = None
    cash_config = cash_method(methods)
    if cash_config is not None:
        theoretical = session.theoretical_cash_amount
        physical = amount_or(form.cash_physical_input, session.counted_cash_amount)
        gross = physical - theoretical - rendered_total
        gross_with_receipts = gross + receipts
        cash_justifications = form.justifications.get(cash_config.display_name, [])
        justified = closing_total(gross_with_receipts, cash_justifications)
        net = gross_with_receipts + justified
        cash_row = CashDiscrepancy(
            method_id=cash_config.id,
            method_name=cash_config.display_name,
            is_cash=True,
            system_amount=theoretical,
            physical_amount=physical,
            gross_difference=gross_with_receipts,
            justified_total=justified,
            net_difference=net,
            justifications=cash_justifications,
            justifiable=mode == "create" and gross_with_receipts != 0 and net != 0,
            review_flag=_review_flag(mode, cash_justifications, net),
            rendered_expenses_total=rendered_total,
            receipt_net_effect=receipts,
            gross_without_receipts=gross,
        )

    rows = []
    for method in non_cash_methods(methods):
        detail = form.detail_for(method.id) or PaymentDetail(id=method.id, name=method.display_name)
        physical = amount_or(detail.physical_input, detail.system_amount)
        gross = physical - detail.system_amount
        method_justifications = form.justifications.get(method.display_name, [])
        justified = closing_total(gross, method_justifications)
        net = gross + justified
        rows.append(
            DiscrepancyRow(
                method_id=method.id,
                method_name=method.display_name,
                system_amount=detail.system_amount,
                physical_amount=physical,
                gross_difference=gross,
                justified_total=justified,
                net_difference=net,
                justifications=method_justifications,
                justifiable=mode == "create" and gross != 0 and net != 0,
                review_flag=_review_flag(mode, method_justifications, net),
            )
        )

    return DiscrepancySummary(
        cash=cash_row,
        methods=rows,
        system_expenses=system_expenses,
        rendered_expenses_total=rendered_total,
        expense_difference=system_expenses - rendered_total,
        receipt_net_effect=receipts,
    )


@dataclass(frozen=True)
class SubmissionIssue:
    field: str
    message: str


@dataclass
class SubmissionCheck:
    issues: list[SubmissionIssue] = field(default_factory=list)
    cash_amount: Decimal | None = None
    physical_amounts: dict[str, Decimal] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def message(self) -> str:
        return " ".join(issue.message for issue in self.issues)


def check_submission(
    form: RectificationForm,
    methods: list[PaymentMethodConfig],
    session: PosSession | None = None,
) -> SubmissionCheck:
    """Collect every missing or non-numeric physical amount in one pass.

    With ``session`` given, justifications whose kind contradicts the
    direction of their row's difference are reported too.
    """
    check = SubmissionCheck()
    if cash_method(methods) is not None:
        try:
            check.cash_amount = parse_amount(form.cash_physical_input)
        except ValueError:
            check.issues.append(
                SubmissionIssue("cash", "El saldo de efectivo físico ingresado debe ser un número válido.")
            )
        else:
            if check.cash_amount is None:
                check.issues.append(SubmissionIssue("cash", "El campo de monto físico efectivo es obligatorio."))

    for method in non_cash_methods(methods):
        detail = form.detail_for(method.id)
        raw = detail.physical_input if detail is not None else ""
        try:
            amount = parse_amount(raw)
        except ValueError:
            check.issues.append(
                SubmissionIssue(method.id, f"El monto físico para {method.display_name} no es un número válido.")
            )
            continue
        if amount is None:
            check.issues.append(
                SubmissionIssue(method.id, f"El campo de monto físico para {method.display_name} es obligatorio.")
            )
            continue
        check.physical_amounts[method.id] = amount
    if session is not None:
        check.issues.extend(_kind_mismatches(session, form, methods))
    return check


def build_rectification_details(
    form: RectificationForm,
    methods: list[PaymentMethodConfig],
    check: SubmissionCheck,
) -> RectificationDetails:
    by_method: dict[str, MethodEntry] = {}
    cash_config = cash_method(methods)
    if cash_config is not None:
        by_method[cash_config.display_name] = MethodEntry(
            physical_amount=check.cash_amount,
            justifications=form.justifications.get(cash_config.display_name, []),
        )
    for method in non_cash_methods(methods):
        by_method[method.display_name] = MethodEntry(
            physical_amount=check.physical_amounts.get(method.id),
            justifications=form.justifications.get(method.display_name, []),
        )
    return RectificationDetails(
        cash_adjustment=CashAdjustment(adjusted_amount=check.cash_amount or ZERO),
        justifications_by_method=by_method,
        rendered_expenses=list(form.rendered_expenses),
        pending_receipts=list(form.pending_receipts),
    )


def _kind_mismatches(
    session: PosSession, form: RectificationForm, methods: list[PaymentMethodConfig]
) -> list[SubmissionIssue]:
    summary = compute_discrepancies(session, form, methods, "create")
    rows: list[DiscrepancyRow] = ([summary.cash] if summary.cash is not None else []) + summary.methods
    issues = []
    for row in rows:
        wanted = expected_kind(row.gross_difference)
        if wanted is None:
            continue
        if any(item.kind != wanted for item in row.justifications):
            issues.append(
                SubmissionIssue(
                    "cash" if row.is_cash else row.method_id,
                    f"Las justificaciones de {row.method_name} deben ser de tipo {wanted}.",
                )
            )
    return issues
