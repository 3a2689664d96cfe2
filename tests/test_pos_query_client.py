import json

import pytest
import requests
import responses

from app.cuadraturas.clients.pos_query import PosClientConfig, PosQueryClient
from app.cuadraturas.core.error_catalog import AppError

POS_URL = "https://pos.example.test/odoo"


def _client() -> PosQueryClient:
    return PosQueryClient(PosClientConfig(base_url="https://pos.example.test/", bearer_token="secret-token"))


@responses.activate
def test_fetch_sessions_sends_search_read_query():
    responses.add(responses.POST, POS_URL, json=[{"id": 1, "name": "POS/00001"}], status=200)

    rows = _client().fetch_sessions()

    assert rows == [{"id": 1, "name": "POS/00001"}]
    request = responses.calls[0].request
    assert request.headers["Authorization"] == "bearer secret-token"
    body = json.loads(request.body)
    assert body["model"] == "pos.session"
    assert body["method"] == "search_read"
    assert body["order"] == "start_at DESC"
    assert "cash_register_balance_end" in body["fields"]
    assert "filters" not in body


@responses.activate
def test_fetch_session_payments_groups_by_method():
    responses.add(responses.POST, POS_URL, json=[], status=200)

    assert _client().fetch_session_payments("7") == []

    body = json.loads(responses.calls[0].request.body)
    assert body["model"] == "pos.payment"
    assert body["method"] == "read_group"
    assert body["groupby"] == ["payment_method_id"]
    assert body["fields"] == ["amount:sum", "payment_method_id"]
    assert body["filters"] == [
        [["session_id", "in", [7]], ["pos_order_id.state", "in", ["paid", "invoiced", "done"]]]
    ]


@responses.activate
def test_fetch_session_filters_by_id():
    responses.add(responses.POST, POS_URL, json=[{"id": 7, "name": "POS/00007"}], status=200)
    responses.add(responses.POST, POS_URL, json=[], status=200)

    assert _client().fetch_session(7) == {"id": 7, "name": "POS/00007"}
    assert _client().fetch_session(8) is None

    body = json.loads(responses.calls[0].request.body)
    assert body["model"] == "pos.session"
    assert body["filters"] == [[["id", "=", 7]]]
    assert body["limit"] == 1


def test_fetch_session_payments_without_session_skips_call():
    assert _client().fetch_session_payments(None) == []


@responses.activate
def test_error_message_comes_from_json_body():
    responses.add(responses.POST, POS_URL, json={"message": "Token expirado"}, status=401)

    with pytest.raises(AppError) as exc_info:
        _client().fetch_sessions()

    assert exc_info.value.error.code == "NETWORK_FAILURE"
    assert exc_info.value.error.status_code == 502
    assert exc_info.value.details == {"message": "Token expirado", "status_code": 401}


@responses.activate
def test_error_message_falls_back_to_error_key():
    responses.add(responses.POST, POS_URL, json={"error": "modelo no permitido"}, status=400)

    with pytest.raises(AppError) as exc_info:
        _client().fetch_sessions()

    assert exc_info.value.details["message"] == "modelo no permitido"


@responses.activate
def test_error_message_without_json_uses_status_line():
    responses.add(responses.POST, POS_URL, body="upstream down", status=503)

    with pytest.raises(AppError) as exc_info:
        _client().fetch_sessions()

    assert exc_info.value.details["message"].startswith("Error 503")


@responses.activate
def test_connection_error_is_network_failure():
    responses.add(responses.POST, POS_URL, body=requests.ConnectionError("refused"))

    with pytest.raises(AppError) as exc_info:
        _client().fetch_sessions()

    assert exc_info.value.error.code == "NETWORK_FAILURE"
    assert exc_info.value.details["type"] == "ConnectionError"
