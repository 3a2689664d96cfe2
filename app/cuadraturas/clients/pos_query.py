from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from app.cuadraturas.core.error_catalog import AppError, ErrorCatalog
from app.cuadraturas.core.logging import log_json

logger = logging.getLogger("cuadraturas.pos")

SESSION_FIELDS = [
    "id",
    "name",
    "user_id",
    "start_at",
    "stop_at",
    "crm_team_id",
    "cash_register_balance_start",
    "cash_register_balance_end_real",
    "cash_register_difference",
    "cash_register_balance_end",
    "cash_real_transaction",
]
PAID_ORDER_STATES = ["paid", "invoiced", "done"]


@dataclass(frozen=True)
class PosClientConfig:
    base_url: str
    bearer_token: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 30.0
    max_connections: int = 10
    verify_ssl: bool = True


def _error_message(response: requests.Response) -> str:
    message = f"Error {response.status_code}: {response.reason}"
    try:
        payload = response.json()
    except ValueError:
        return message
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("error") or message)
    return message


@dataclass
class PosQueryClient:
    config: PosClientConfig
    session: requests.Session | None = None

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()
            adapter = HTTPAdapter(
                pool_connections=self.config.max_connections,
                pool_maxsize=self.config.max_connections,
            )
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    @property
    def endpoint(self) -> str:
        return urljoin(self.config.base_url.rstrip("/") + "/", "odoo")

    def query(
        self,
        *,
        model: str,
        fields: list[str],
        method: str = "search_read",
        filters: list | None = None,
        groupby: list[str] | None = None,
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {"model": model, "fields": fields, "method": method}
        if filters is not None:
            body["filters"] = filters
        if groupby is not None:
            body["groupby"] = groupby
        if limit is not None:
            body["limit"] = limit
        if order is not None:
            body["order"] = order
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"bearer {self.config.bearer_token}",
        }
        started = time.perf_counter()
        try:
            response = self.session.post(
                self.endpoint,
                json=body,
                headers=headers,
                timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                verify=self.config.verify_ssl,
            )
        except requests.RequestException as exc:
            log_json(
                logger,
                {"event": "pos_query_failed", "model": model, "method": method, "error_class": type(exc).__name__},
                level=logging.WARNING,
            )
            raise AppError(
                ErrorCatalog.NETWORK_FAILURE,
                details={"message": str(exc), "type": type(exc).__name__},
            ) from exc

        latency_ms = round((time.perf_counter() - started) * 1000, 2)
        if not response.ok:
            message = _error_message(response)
            log_json(
                logger,
                {
                    "event": "pos_query_failed",
                    "model": model,
                    "method": method,
                    "status_code": response.status_code,
                    "latency_ms": latency_ms,
                },
                level=logging.WARNING,
            )
            raise AppError(
                ErrorCatalog.NETWORK_FAILURE,
                details={"message": message, "status_code": response.status_code},
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AppError(
                ErrorCatalog.NETWORK_FAILURE,
                details={"message": "Respuesta inválida del sistema de punto de venta"},
            ) from exc
        log_json(logger, {"event": "pos_query", "model": model, "method": method, "latency_ms": latency_ms})
        if not isinstance(payload, list):
            return []
        return payload

    def fetch_sessions(self) -> list[dict[str, Any]]:
        return self.query(
            model="pos.session",
            fields=SESSION_FIELDS,
            method="search_read",
            order="start_at DESC",
        )

    def fetch_session(self, session_id: int) -> dict[str, Any] | None:
        rows = self.query(
            model="pos.session",
            fields=SESSION_FIELDS,
            method="search_read",
            filters=[[["id", "=", int(session_id)]]],
            limit=1,
        )
        return rows[0] if rows else None

    def fetch_session_payments(self, session_id: int | None) -> list[dict[str, Any]]:
        if session_id is None:
            return []
        return self.query(
            model="pos.payment",
            filters=[[["session_id", "in", [int(session_id)]], ["pos_order_id.state", "in", PAID_ORDER_STATES]]],
            fields=["amount:sum", "payment_method_id"],
            method="read_group",
            groupby=["payment_method_id"],
        )


def build_pos_client(settings) -> PosQueryClient:
    return PosQueryClient(
        PosClientConfig(
            base_url=settings.POS_API_BASE_URL,
            bearer_token=settings.POS_API_BEARER_TOKEN,
            connect_timeout_seconds=settings.POS_API_CONNECT_TIMEOUT_SECONDS,
            read_timeout_seconds=settings.POS_API_READ_TIMEOUT_SECONDS,
            max_connections=settings.POS_API_MAX_CONNECTIONS,
            verify_ssl=settings.POS_API_VERIFY_SSL,
        )
    )
