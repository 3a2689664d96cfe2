from datetime import datetime
from types import SimpleNamespace

import pytest
import responses

from app.cuadraturas.schemas.sessions import PosSession, SessionRow
from app.cuadraturas.services.session_aggregator import (
    can_interact,
    filter_view,
    group_sessions,
    latest_requests_by_session,
    select_session_for_rectification,
)
from tests.cuadraturas_helpers import (
    ADMIN_UID,
    POS_URL,
    auth_headers,
    create_draft,
    create_request,
    make_actor,
    mock_pos,
    pos_session,
)


def _row(session_id: int, start_at: str | None, store=(1, "Local Centro"), status="sin_rectificar", has_draft=False):
    return SessionRow(
        session=PosSession.model_validate(pos_session(session_id, start_at, store)),
        rectification_status=status,
        has_draft=has_draft,
    )


def _ids(view) -> list[int]:
    return [row.session.id for row in view.rows()]


def test_grouping_buckets_by_calendar_date_and_drops_missing_start():
    rows = [
        _row(1, "2024-05-03 08:00:00"),
        _row(2, "2024-05-14 09:30:00"),
        _row(3, "2024-04-30 22:00:00"),
        _row(4, None),
        _row(5, "not-a-date"),
        _row(6, "2024-05-14 18:00:00", store=(2, "Local Norte")),
        _row(7, "2024-05-20 10:00:00", store=None),
    ]

    view = group_sessions(rows)

    assert [store.store for store in view.stores] == ["Local Centro", "Local Desconocido", "Local Norte"]
    centro = view.stores[0]
    assert [month.month for month in centro.months] == ["2024-05", "2024-04"]
    assert centro.months[0].display == "Mayo 2024"
    assert centro.months[1].display == "Abril 2024"
    assert [day.day for day in centro.months[0].days] == ["14", "03"]
    assert sorted(_ids(view)) == [1, 2, 3, 6, 7]
    assert len(_ids(view)) == len(set(_ids(view)))


def test_days_sort_numerically_descending():
    rows = [_row(index, f"2024-05-{day:02d} 10:00:00") for index, day in enumerate([2, 10, 9, 31], start=1)]

    days = group_sessions(rows).stores[0].months[0].days

    assert [day.day for day in days] == ["31", "10", "09", "02"]


def test_latest_request_wins_regardless_of_order():
    older = SimpleNamespace(session_id=5, submitted_at=datetime(2024, 5, 1), status="rechazada", id="a")
    newer = SimpleNamespace(session_id=5, submitted_at=datetime(2024, 5, 2), status="pendiente", id="b")
    other = SimpleNamespace(session_id=6, submitted_at=datetime(2024, 5, 1), status="aprobada", id="c")

    assert latest_requests_by_session([older, newer, other])[5].id == "b"
    assert latest_requests_by_session([newer, other, older])[5].id == "b"
    assert latest_requests_by_session([other])[6].status == "aprobada"


def test_filter_prunes_empty_nodes_and_is_idempotent():
    view = group_sessions(
        [
            _row(1, "2024-05-03 08:00:00", status="aprobada"),
            _row(2, "2024-05-03 09:00:00", status="pendiente"),
            _row(3, "2024-04-10 09:00:00", status="sin_rectificar", has_draft=True),
            _row(4, "2024-04-11 09:00:00", store=(2, "Local Norte"), status="sin_rectificar"),
        ]
    )

    approved = filter_view(view, "aprobada")
    assert _ids(approved) == [1]
    assert [store.store for store in approved.stores] == ["Local Centro"]
    assert [month.month for month in approved.stores[0].months] == ["2024-05"]

    drafts = filter_view(view, "borrador")
    assert _ids(drafts) == [3]

    unrectified = filter_view(view, "sin_rectificar")
    assert sorted(_ids(unrectified)) == [3, 4]

    for status in ["", "aprobada", "rechazada", "pendiente", "borrador", "sin_rectificar"]:
        once = filter_view(view, status)
        assert filter_view(once, status) == once

    assert filter_view(view, "") == view
    assert filter_view(view, "rechazada").stores == []


@pytest.mark.parametrize(
    "status, role, has_draft, mode, view_draft",
    [
        ("sin_rectificar", "admin", False, "create", False),
        ("sin_rectificar", "admin", True, "create", False),
        ("sin_rectificar", "superadmin", True, "view_only", True),
        ("sin_rectificar", "superadmin", False, "view_only", False),
        ("pendiente", "superadmin", False, "review", False),
        ("pendiente", "admin", False, "view_only", False),
        ("aprobada", "admin", False, "view_only", False),
        ("rechazada", "admin", False, "view_only", False),
        ("aprobada", "superadmin", False, "view_only", False),
        ("rechazada", "superadmin", False, "view_only", False),
        ("sin_rectificar", "cajero", False, "view_only", False),
    ],
)
def test_selection_decision_table(status, role, has_draft, mode, view_draft):
    decision = select_session_for_rectification(_row(1, "2024-05-03", status=status, has_draft=has_draft), role)

    assert decision.initial_mode == mode
    assert decision.view_draft is view_draft


def test_can_interact_rules():
    admin = make_actor("admin")
    superadmin = make_actor("superadmin")

    assert can_interact(superadmin, "aprobada", None)
    assert can_interact(admin, "sin_rectificar", None)
    assert can_interact(admin, "pendiente", ADMIN_UID)
    assert not can_interact(admin, "pendiente", "someone-else")
    assert not can_interact(admin, "aprobada", ADMIN_UID)


@responses.activate
def test_list_sessions_enriches_status_and_drafts(client, db_session):
    mock_pos(
        sessions=[
            pos_session(10, "2024-05-14 09:00:00"),
            pos_session(11, "2024-05-13 09:00:00"),
            pos_session(12, "2024-05-12 09:00:00"),
            pos_session(13, False),
        ]
    )
    create_request(db_session, 10, status="rechazada", submitted_at=datetime(2024, 5, 14, 12))
    create_request(db_session, 10, status="pendiente", submitted_at=datetime(2024, 5, 15, 12))
    create_draft(db_session, 11, {"mainFormData": {"nuevoSaldoFinalRealEfectivo": "1000"}})

    response = client.get("/cuadraturas/sessions", headers=auth_headers("admin"))

    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 3
    rows = {
        row["session"]["id"]: row
        for store in payload["view"]["stores"]
        for month in store["months"]
        for day in month["days"]
        for row in day["sessions"]
    }
    assert rows[10]["rectification_status"] == "pendiente"
    assert rows[10]["can_interact"] is True
    assert rows[11]["rectification_status"] == "sin_rectificar"
    assert rows[11]["has_draft"] is True
    assert rows[12]["has_draft"] is False
    assert payload["view"]["stores"][0]["months"][0]["display"] == "Mayo 2024"


@responses.activate
def test_list_sessions_status_filter_borrador(client, db_session):
    mock_pos(sessions=[pos_session(20, "2024-05-14 09:00:00"), pos_session(21, "2024-05-13 09:00:00")])
    create_draft(db_session, 21, {"gastosRendidos": []})

    response = client.get("/cuadraturas/sessions", params={"status": "borrador"}, headers=auth_headers("superadmin"))

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "borrador"
    assert payload["total"] == 1
    assert payload["view"]["stores"][0]["months"][0]["days"][0]["sessions"][0]["session"]["id"] == 21


@responses.activate
def test_draft_lookup_failure_does_not_abort_listing(client, db_session, monkeypatch):
    from app.cuadraturas.services.drafts import DraftService

    mock_pos(sessions=[pos_session(30, "2024-05-14 09:00:00"), pos_session(31, "2024-05-13 09:00:00")])
    create_draft(db_session, 31, {"gastosRendidos": []})

    def failing_lookup(self):
        raise RuntimeError("ledger read timed out")

    monkeypatch.setattr(DraftService, "draft_session_ids", failing_lookup)

    response = client.get("/cuadraturas/sessions", headers=auth_headers("admin"))

    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 2
    assert all(row["has_draft"] is False for row in _rows(payload))


def _rows(payload):
    return [
        row
        for store in payload["view"]["stores"]
        for month in store["months"]
        for day in month["days"]
        for row in day["sessions"]
    ]


@responses.activate
def test_list_sessions_pos_failure_is_page_level_error(client):
    responses.add(responses.POST, POS_URL, json={"message": "Servicio no disponible"}, status=503)

    response = client.get("/cuadraturas/sessions", headers=auth_headers("admin"))

    assert response.status_code == 502
    payload = response.json()
    assert payload["code"] == "NETWORK_FAILURE"
    assert payload["details"]["message"] == "Servicio no disponible"
    assert payload["trace_id"]


def test_list_sessions_rejects_unknown_filter(client):
    response = client.get("/cuadraturas/sessions", params={"status": "cerrada"}, headers=auth_headers("admin"))

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_list_sessions_requires_reconciliation_role(client):
    assert client.get("/cuadraturas/sessions").status_code == 401
    response = client.get("/cuadraturas/sessions", headers=auth_headers("cajero"))
    assert response.status_code == 403
    assert response.json()["code"] == "PERMISSION_DENIED"


def test_invalid_token_is_rejected(client):
    response = client.get("/cuadraturas/sessions", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN"
