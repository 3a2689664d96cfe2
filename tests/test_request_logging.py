from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.cuadraturas.middleware.observability import request_log_payload


def test_request_log_payload_uses_route_template():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/cuadraturas/sessions/7/open",
        "headers": [],
        "route": SimpleNamespace(path="/cuadraturas/sessions/{session_id}/open"),
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.user_id = "admin-1"
    request.state.error_code = "REQUEST_NOT_FOUND"

    payload = request_log_payload(request, Response(status_code=404), 12.3456, 4.5678)

    assert payload["event"] == "http_request"
    assert payload["route"] == "/cuadraturas/sessions/{session_id}/open"
    assert payload["user_id"] == "admin-1"
    assert payload["status_code"] == 404
    assert payload["latency_ms"] == 12.35
    assert payload["db_time_ms"] == 4.57
    assert payload["error_code"] == "REQUEST_NOT_FOUND"


def test_request_log_payload_without_response_reports_500():
    request = Request({"type": "http", "method": "GET", "path": "/cuadraturas/sessions", "headers": []})

    payload = request_log_payload(request, None, 1.0, None)

    assert payload["route"] == "/cuadraturas/sessions"
    assert payload["status_code"] == 500
    assert payload["db_time_ms"] is None
    assert payload["trace_id"] == ""
