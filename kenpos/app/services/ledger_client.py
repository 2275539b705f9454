"""HTTP client for the remote sales ledger.

Remote contract: ``POST {base}/sales`` with the sale snapshot as JSON and
an ``Idempotency-Key`` header equal to the sale id. 200/201/202 mean the
sale was recorded; 409 means it was already recorded under that id (a
redelivery after an interrupted sweep) and is treated as acknowledged.
Anything else is a ``SyncError``.
"""

from __future__ import annotations

from typing import Any

import httpx

from kenpos.app.core.config import settings
from kenpos.app.core.exceptions import SyncError

_ACCEPTED = {200, 201, 202}


class LedgerClient:
    def __init__(
        self,
        base_url: str,
        *,
        api_token: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, transport: httpx.BaseTransport | None = None) -> LedgerClient:
        return cls(
            settings.LEDGER_BASE_URL,
            api_token=settings.LEDGER_API_TOKEN,
            timeout=settings.SYNC_TIMEOUT_SECONDS,
            transport=transport,
        )

    def __enter__(self) -> LedgerClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def submit_sale(self, payload: dict[str, Any]) -> None:
        """Deliver one sale. Returns on acknowledgment, raises ``SyncError`` otherwise."""
        sale_id = str(payload["id"])
        try:
            resp = self._client.post(
                "/sales", json=payload, headers={"Idempotency-Key": sale_id}
            )
        except httpx.TimeoutException as exc:
            raise SyncError(f"Timed out submitting sale {sale_id}") from exc
        except httpx.TransportError as exc:
            raise SyncError(f"Ledger unreachable: {exc}") from exc

        if resp.status_code in _ACCEPTED or resp.status_code == 409:
            return
        raise SyncError(
            f"Ledger rejected sale {sale_id}: HTTP {resp.status_code} {resp.text[:200]}",
            status_code=resp.status_code,
            retryable=resp.status_code >= 500 or resp.status_code == 429,
        )

    def retract_sale(self, sale_id: str) -> None:
        """Compensate a submission whose local commit failed."""
        try:
            resp = self._client.delete(f"/sales/{sale_id}")
        except httpx.HTTPError as exc:
            raise SyncError(f"Could not retract sale {sale_id}: {exc}") from exc
        if resp.status_code not in {200, 202, 204, 404}:
            raise SyncError(
                f"Ledger refused retraction of {sale_id}: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

    def health(self) -> bool:
        try:
            resp = self._client.get("/health")
        except httpx.HTTPError:
            return False
        return resp.status_code == 200
