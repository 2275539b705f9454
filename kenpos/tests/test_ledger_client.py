"""Unit tests for LedgerClient with httpx mock transport."""

from __future__ import annotations

import json

import httpx
import pytest

from kenpos.app.core.exceptions import SyncError
from kenpos.app.services.ledger_client import LedgerClient
from kenpos.tests.conftest import LEDGER_URL

SALE = {"id": "INV-1700000000000", "total": "116.00", "lines": []}


def _client(handler) -> LedgerClient:
    return LedgerClient(
        LEDGER_URL, api_token="secret", transport=httpx.MockTransport(handler)
    )


def _status(code: int):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(code, text="nope" if code >= 400 else "")

    return handler


class TestSubmitSale:
    def test_posts_snapshot_with_idempotency_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": SALE["id"]})

        with _client(handler) as client:
            client.submit_sale(SALE)

        [request] = seen
        assert request.method == "POST"
        assert str(request.url) == f"{LEDGER_URL}/sales"
        assert request.headers["Idempotency-Key"] == SALE["id"]
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == SALE

    @pytest.mark.parametrize("code", [200, 201, 202, 409])
    def test_acknowledged_statuses(self, code: int) -> None:
        with _client(_status(code)) as client:
            client.submit_sale(SALE)

    @pytest.mark.parametrize("code", [500, 502, 503, 429])
    def test_server_errors_are_retryable(self, code: int) -> None:
        with _client(_status(code)) as client:
            with pytest.raises(SyncError) as exc_info:
                client.submit_sale(SALE)
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == code

    @pytest.mark.parametrize("code", [400, 401, 422])
    def test_rejections_are_final(self, code: int) -> None:
        with _client(_status(code)) as client:
            with pytest.raises(SyncError) as exc_info:
                client.submit_sale(SALE)
        assert exc_info.value.retryable is False
        assert "nope" in str(exc_info.value)

    def test_transport_error_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with _client(handler) as client:
            with pytest.raises(SyncError, match="unreachable") as exc_info:
                client.submit_sale(SALE)
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code is None

    def test_timeout_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with _client(handler) as client:
            with pytest.raises(SyncError, match="Timed out") as exc_info:
                client.submit_sale(SALE)
        assert exc_info.value.retryable is True


class TestRetractAndHealth:
    @pytest.mark.parametrize("code", [200, 204, 404])
    def test_retract_accepts_gone(self, code: int) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(code)

        with _client(handler) as client:
            client.retract_sale("INV-1")
        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/api/sales/INV-1"

    def test_retract_failure_raises(self) -> None:
        with _client(_status(500)) as client:
            with pytest.raises(SyncError, match="refused retraction"):
                client.retract_sale("INV-1")

    def test_health(self) -> None:
        with _client(_status(200)) as client:
            assert client.health() is True
        with _client(_status(503)) as client:
            assert client.health() is False

    def test_health_when_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        with _client(handler) as client:
            assert client.health() is False
