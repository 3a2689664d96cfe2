from decimal import Decimal

import pytest

from app.cuadraturas.core.config import DEFAULT_PAYMENT_METHODS
from app.cuadraturas.schemas.rectifications import (
    Justification,
    PaymentDetail,
    PendingReceipt,
    RectificationForm,
    RenderedExpense,
)
from app.cuadraturas.schemas.sessions import PosSession
from app.cuadraturas.services.reconciliation import (
    build_rectification_details,
    check_submission,
    compute_discrepancies,
    load_payment_methods,
    parse_amount,
    totals_by_method,
)

METHODS = load_payment_methods(DEFAULT_PAYMENT_METHODS)


def _session(**fields) -> PosSession:
    base = {"id": 7, "cash_register_balance_end": 100000, "cash_register_balance_end_real": 97000}
    base.update(fields)
    return PosSession.model_validate(base)


def _details(**physical) -> list[PaymentDetail]:
    system = {"tarjeta_tbk": 50000, "klap": 20000, "transferencia": 10000, "planilla": 0}
    names = {method.id: method.display_name for method in METHODS}
    return [
        PaymentDetail(id=method_id, name=names[method_id], system_amount=amount, physical_input=physical.get(method_id, ""))
        for method_id, amount in system.items()
    ]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("97000", Decimal("97000")),
        (" 97.000 ", Decimal("97000")),
        ("-3000", Decimal("-3000")),
        ("1500.5", Decimal("1500.5")),
        (20000, Decimal("20000")),
        ("", None),
        ("   ", None),
        (None, None),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "12a", "NaN", "Infinity"])
def test_parse_amount_rejects_non_numbers(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_totals_aggregate_multiple_external_labels():
    payments = [
        {"payment_method_id": [1, "Tarjeta"], "amount": 30000},
        {"payment_method_id": [2, "Transbank SOS"], "amount": 12500.0},
        {"payment_method_id": [3, "Klap"], "amount": 20000},
        {"payment_method_id": [4, "Efectivo"], "amount": 99999},
        {"payment_method_id": False, "amount": 1},
    ]

    totals = {total.method_id: total.system_amount for total in totals_by_method(METHODS, payments)}

    assert totals == {
        "tarjeta_tbk": Decimal("42500.0"),
        "klap": Decimal("20000"),
        "transferencia": Decimal("0"),
        "planilla": Decimal("0"),
    }


def test_shortage_justification_brings_cash_net_to_zero():
    form = RectificationForm(cash_physical_input="97000", payment_details=_details())
    before = compute_discrepancies(_session(), form, METHODS, "create")
    assert before.cash.gross_difference == Decimal("-3000")
    assert before.cash.justifiable is True

    form.justifications["Efectivo"] = [Justification(amount=3000, reason="faltante caja chica", kind="faltante")]
    after = compute_discrepancies(_session(), form, METHODS, "create")

    assert after.cash.justified_total == Decimal("3000")
    assert after.cash.net_difference == 0
    assert after.cash.justifiable is False


def test_surplus_justification_is_stored_negative_and_nets_to_zero():
    form = RectificationForm(payment_details=_details(klap="25000"))
    form.justifications["Klap"] = [Justification(amount=5000, reason="propina mal cobrada", kind="sobrante")]

    summary = compute_discrepancies(_session(), form, METHODS, "create")
    klap = next(row for row in summary.methods if row.method_id == "klap")

    assert form.justifications["Klap"][0].amount == Decimal("-5000")
    assert klap.gross_difference == Decimal("5000")
    assert klap.net_difference == 0


def test_justification_always_pulls_net_toward_zero():
    form = RectificationForm(
        cash_physical_input="97000",
        payment_details=_details(tarjeta_tbk="50000", klap="22000", transferencia="10000", planilla="0"),
    )
    form.justifications["Klap"] = [Justification(amount=2000, reason="propina mal cobrada")]

    summary = compute_discrepancies(_session(), form, METHODS, "create")
    klap = next(row for row in summary.methods if row.method_id == "klap")

    assert klap.gross_difference == Decimal("2000")
    assert klap.justified_total == Decimal("-2000")
    assert klap.net_difference == 0
    assert klap.justifiable is False

    check = check_submission(form, METHODS, _session())
    assert [(issue.field, issue.message) for issue in check.issues] == [
        ("klap", "Las justificaciones de Klap deben ser de tipo sobrante.")
    ]


def test_receipts_and_expenses_shift_cash_difference():
    form = RectificationForm(
        cash_physical_input="97000",
        rendered_expenses=[RenderedExpense(amount=2000, voucher_number="F-1", reason="Agua")],
        pending_receipts=[
            PendingReceipt(amount=4000, receipt_number="B-10", state="Pendiente"),
            PendingReceipt(amount=1000, receipt_number="B-11", state="Rectificacion"),
        ],
    )
    session = _session(cash_real_transaction=-2500)

    summary = compute_discrepancies(session, form, METHODS, "create")

    assert summary.cash.gross_without_receipts == Decimal("-5000")
    assert summary.receipt_net_effect == Decimal("3000")
    assert summary.cash.gross_difference == Decimal("-2000")
    assert summary.cash.net_difference == Decimal("-2000")
    assert summary.system_expenses == Decimal("2500")
    assert summary.expense_difference == Decimal("500")


def test_blank_inputs_fall_back_for_display():
    summary = compute_discrepancies(_session(), RectificationForm(payment_details=_details()), METHODS, "create")

    assert summary.cash.physical_amount == Decimal("97000")
    assert all(row.gross_difference == 0 for row in summary.methods)
    assert all(row.justifiable is False for row in summary.methods)


def test_placeholder_session_reads_as_zero():
    summary = compute_discrepancies(PosSession.placeholder(9), RectificationForm(), METHODS, "view_only")

    assert summary.cash.system_amount == 0
    assert summary.cash.physical_amount == 0
    assert summary.cash.net_difference == 0
    assert summary.system_expenses == 0


def test_review_flags():
    form = RectificationForm(cash_physical_input="97000", payment_details=_details(klap="20000", tarjeta_tbk="49000"))
    form.justifications["Transferencia"] = [Justification(amount=1, reason="x", kind="faltante")]

    summary = compute_discrepancies(_session(), form, METHODS, "review")
    flags = {row.method_id: row.review_flag for row in summary.methods}

    assert summary.cash.review_flag == "attention"
    assert flags["klap"] == "ok"
    assert flags["tarjeta_tbk"] == "attention"
    assert flags["transferencia"] is None
    assert all(row.justifiable is False for row in summary.methods)


def test_submission_check_names_every_missing_method():
    form = RectificationForm(cash_physical_input="97000", payment_details=_details(tarjeta_tbk="50000", klap="20000"))

    check = check_submission(form, METHODS)

    assert not check.ok
    assert [issue.field for issue in check.issues] == ["transferencia", "planilla"]
    assert "Transferencia" in check.message
    assert "Planilla" in check.message
    assert check.message == (
        "El campo de monto físico para Transferencia es obligatorio. "
        "El campo de monto físico para Planilla es obligatorio."
    )


def test_submission_check_reports_cash_and_invalid_numbers_together():
    form = RectificationForm(
        cash_physical_input="noventa",
        payment_details=_details(tarjeta_tbk="50000", klap="veinte", transferencia="0", planilla="0"),
    )

    check = check_submission(form, METHODS)

    assert [issue.message for issue in check.issues] == [
        "El saldo de efectivo físico ingresado debe ser un número válido.",
        "El monto físico para Klap no es un número válido.",
    ]


def test_build_details_uses_ledger_keys():
    form = RectificationForm(
        cash_physical_input="97000",
        payment_details=_details(tarjeta_tbk="50000", klap="20000", transferencia="10000", planilla="0"),
    )
    form.justifications["Efectivo"] = [Justification(amount=3000, reason="faltante caja chica", timestamp=1)]
    check = check_submission(form, METHODS)

    ledger = build_rectification_details(form, METHODS, check).to_ledger()

    assert ledger["ajusteSaldoEfectivo"] == {"montoAjustado": 97000}
    assert ledger["justificacionesPorMetodo"]["Efectivo"]["justificaciones"] == [
        {"monto": 3000, "motivo": "faltante caja chica", "tipo": "faltante", "timestamp": 1}
    ]
    assert ledger["justificacionesPorMetodo"]["Tarjeta + Transbank SOS"]["montoFisicoIngresado"] == 50000
    assert ledger["gastosRendidos"] == []
    assert ledger["boletasPendientesRegistradas"] == []
