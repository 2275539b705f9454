"""HTTP-level tests for the POS router."""
from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient

from kenpos.app.models.customer import Customer
from kenpos.app.models.inventory import Product
from kenpos.app.models.pos import Shift
from kenpos.app.services.connectivity import ConnectivityMonitor
from kenpos.tests.conftest import FakeLedger, auth

POS = "/api/v1/pos"

BREAD = {
    "product_id": "p-bread",
    "name": "Bread",
    "quantity": 1,
    "unit_price": "116",
    "pricing_type": "inclusive",
    "product_kind": "Inventory",
    "unit_cost": "80",
}
SODA = {
    "product_id": "p-soda",
    "name": "Soda Crate",
    "quantity": 2,
    "unit_price": "100",
    "pricing_type": "exclusive",
}


def _sale_body(**overrides) -> dict:
    body = {"lines": [BREAD], "payments": [{"method": "Cash", "amount": "200"}]}
    body.update(overrides)
    return body


# ─── TestAuth ────────────────────────────────────────────────────────────────


class TestAuth:
    def test_token_required(self, client: TestClient) -> None:
        resp = client.get(f"{POS}/shifts/active")
        assert resp.status_code == 401

    def test_login(self, client: TestClient, operator) -> None:
        resp = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": "cashier1", "password": "pass"},
        )
        assert resp.status_code == 200
        token = resp.json()["access_token"]
        assert client.get(f"{POS}/shifts/active", headers=auth(token)).status_code == 200

    def test_login_wrong_password(self, client: TestClient, operator) -> None:
        resp = client.post(
            "/api/v1/auth/login/access-token",
            data={"username": "cashier1", "password": "wrong"},
        )
        assert resp.status_code == 401

    def test_logout_refused_while_shift_open(
        self, client: TestClient, operator_token: str, shift: Shift
    ) -> None:
        resp = client.post("/api/v1/auth/logout", headers=auth(operator_token))
        assert resp.status_code == 409

    def test_logout_revokes_token(self, client: TestClient, operator_token: str) -> None:
        resp = client.post("/api/v1/auth/logout", headers=auth(operator_token))
        assert resp.status_code == 200
        resp = client.get(f"{POS}/shifts/active", headers=auth(operator_token))
        assert resp.status_code == 401


# ─── TestShiftRoutes ─────────────────────────────────────────────────────────


class TestShiftRoutes:
    def test_open_and_close(self, client: TestClient, operator_token: str) -> None:
        h = auth(operator_token)
        assert client.get(f"{POS}/shifts/active", headers=h).json() is None

        resp = client.post(f"{POS}/shifts/open", json={"starting_float": "5000"}, headers=h)
        assert resp.status_code == 201
        shift_id = resp.json()["id"]
        assert shift_id.startswith("shift_")
        assert client.get(f"{POS}/shifts/active", headers=h).json()["id"] == shift_id

        resp = client.get(f"{POS}/shifts/{shift_id}/report", headers=h)
        assert resp.status_code == 409

        resp = client.post(f"{POS}/shifts/close", json={"actual_cash": "4990"}, headers=h)
        assert resp.status_code == 200
        report = resp.json()
        assert Decimal(report["variance"]) == Decimal("-10")
        assert report["is_balanced"] is False

        resp = client.get(f"{POS}/shifts/{shift_id}/report", headers=h)
        assert resp.status_code == 200
        assert resp.json()["id"] == shift_id
        assert [s["id"] for s in client.get(f"{POS}/shifts", headers=h).json()] == [shift_id]

    def test_open_twice_conflicts(
        self, client: TestClient, operator_token: str, shift: Shift
    ) -> None:
        resp = client.post(
            f"{POS}/shifts/open", json={"starting_float": "100"}, headers=auth(operator_token)
        )
        assert resp.status_code == 409

    def test_negative_float_is_unprocessable(self, client: TestClient, operator_token: str) -> None:
        resp = client.post(
            f"{POS}/shifts/open", json={"starting_float": "-5"}, headers=auth(operator_token)
        )
        assert resp.status_code == 422

    def test_close_without_shift_conflicts(self, client: TestClient, operator_token: str) -> None:
        resp = client.post(
            f"{POS}/shifts/close", json={"actual_cash": "0"}, headers=auth(operator_token)
        )
        assert resp.status_code == 409

    def test_unknown_shift_report(self, client: TestClient, operator_token: str) -> None:
        resp = client.get(f"{POS}/shifts/shift_0/report", headers=auth(operator_token))
        assert resp.status_code == 404

    def test_report_of_active_shift_conflicts(
        self, client: TestClient, operator_token: str, shift: Shift
    ) -> None:
        resp = client.get(f"{POS}/shifts/{shift.id}/report", headers=auth(operator_token))
        assert resp.status_code == 409


# ─── TestQuoteAndCart ────────────────────────────────────────────────────────


class TestQuoteAndCart:
    def test_quote(self, client: TestClient, operator_token: str) -> None:
        resp = client.post(
            f"{POS}/quote",
            json={"lines": [SODA], "discount": {"type": "percentage", "value": "10"}},
            headers=auth(operator_token),
        )
        assert resp.status_code == 200
        totals = {k: Decimal(v) for k, v in resp.json().items()}
        assert totals == {
            "subtotal": Decimal("200.00"),
            "discount_amount": Decimal("20.00"),
            "taxable_amount": Decimal("180.00"),
            "tax": Decimal("28.80"),
            "total": Decimal("208.80"),
        }

    def test_quote_rejects_discount_over_maximum(
        self, client: TestClient, operator_token: str
    ) -> None:
        resp = client.post(
            f"{POS}/quote",
            json={"lines": [SODA], "discount": {"type": "percentage", "value": "40"}},
            headers=auth(operator_token),
        )
        assert resp.status_code == 400

    def test_cart_round_trip(self, client: TestClient, operator_token: str) -> None:
        h = auth(operator_token)
        resp = client.put(f"{POS}/cart", json=[SODA, BREAD], headers=h)
        assert resp.json() == {"saved": True, "count": 2}

        cart = client.get(f"{POS}/cart", headers=h).json()
        assert [(c["product_id"], c["quantity"]) for c in cart] == [("p-soda", 2), ("p-bread", 1)]

        assert client.delete(f"{POS}/cart", headers=h).status_code == 204
        assert client.get(f"{POS}/cart", headers=h).json() == []


# ─── TestSaleRoutes ──────────────────────────────────────────────────────────


class TestSaleRoutes:
    def test_sale_without_shift_conflicts(
        self, client: TestClient, operator_token: str, products: dict[str, Product]
    ) -> None:
        resp = client.post(f"{POS}/sale", json=_sale_body(), headers=auth(operator_token))
        assert resp.status_code == 409
        assert "active shift" in resp.json()["detail"]

    def test_online_sale(
        self, client: TestClient, operator_token: str, shift: Shift,
        products: dict[str, Product], customers: dict[str, Customer],
        fake_ledger: FakeLedger,
    ) -> None:
        h = auth(operator_token)
        resp = client.post(
            f"{POS}/sale", json=_sale_body(customer_id="cust-loyal"), headers=h
        )
        assert resp.status_code == 201
        sale = resp.json()
        assert sale["id"].startswith("INV-")
        assert sale["shift_id"] == shift.id
        assert Decimal(sale["total"]) == Decimal("116")
        assert Decimal(sale["change"]) == Decimal("84")
        assert sale["points_earned"] == 1
        assert sale["synced"] is True
        assert [s["id"] for s in fake_ledger.received] == [sale["id"]]

        fetched = client.get(f"{POS}/sales/{sale['id']}", headers=h)
        assert fetched.status_code == 200
        assert fetched.json()["id"] == sale["id"]

    def test_short_payment_is_bad_request(
        self, client: TestClient, operator_token: str, shift: Shift, products: dict[str, Product]
    ) -> None:
        body = _sale_body(payments=[{"method": "Cash", "amount": "50"}])
        resp = client.post(f"{POS}/sale", json=body, headers=auth(operator_token))
        assert resp.status_code == 400

    def test_empty_cart_is_unprocessable(
        self, client: TestClient, operator_token: str, shift: Shift
    ) -> None:
        resp = client.post(f"{POS}/sale", json=_sale_body(lines=[]), headers=auth(operator_token))
        assert resp.status_code == 422

    def test_unknown_sale(self, client: TestClient, operator_token: str) -> None:
        resp = client.get(f"{POS}/sales/INV-0", headers=auth(operator_token))
        assert resp.status_code == 404


# ─── TestSyncRoutes ──────────────────────────────────────────────────────────


class TestSyncRoutes:
    def test_offline_sale_then_reconnect_and_sync(
        self, client: TestClient, operator_token: str, shift: Shift,
        products: dict[str, Product], connectivity: ConnectivityMonitor,
        fake_ledger: FakeLedger,
    ) -> None:
        h = auth(operator_token)
        status = client.post(f"{POS}/connectivity", json={"online": False}, headers=h).json()
        assert status == {"pending": 0, "online": False}

        sale = client.post(f"{POS}/sale", json=_sale_body(), headers=h).json()
        assert sale["synced"] is False
        assert fake_ledger.received == []
        assert client.get(f"{POS}/sync/status", headers=h).json() == {"pending": 1, "online": False}

        status = client.post(f"{POS}/connectivity", json={"online": True}, headers=h).json()
        assert status == {"pending": 1, "online": True}

        result = client.post(f"{POS}/sync", headers=h).json()
        assert result == {"success": 1, "failed": 0}
        assert client.get(f"{POS}/sync/status", headers=h).json()["pending"] == 0
        assert client.get(f"{POS}/sales/{sale['id']}", headers=h).json()["synced"] is True

    def test_outbox_export_and_restore(
        self, client: TestClient, operator_token: str, shift: Shift,
        products: dict[str, Product], connectivity: ConnectivityMonitor,
    ) -> None:
        h = auth(operator_token)
        connectivity.mark_offline()
        sale = client.post(f"{POS}/sale", json=_sale_body(), headers=h).json()

        backup = client.get(f"{POS}/outbox/export", headers=h).json()
        assert [s["id"] for s in backup] == [sale["id"]]

        assert client.post(f"{POS}/outbox/restore", json=[], headers=h).json() == {"restored": 0}
        assert client.get(f"{POS}/sync/status", headers=h).json()["pending"] == 0

        assert client.post(f"{POS}/outbox/restore", json=backup, headers=h).json() == {"restored": 1}
        assert client.get(f"{POS}/sync/status", headers=h).json()["pending"] == 1

    def test_malformed_restore_is_bad_request(
        self, client: TestClient, operator_token: str, shift: Shift,
        products: dict[str, Product], connectivity: ConnectivityMonitor,
    ) -> None:
        h = auth(operator_token)
        connectivity.mark_offline()
        client.post(f"{POS}/sale", json=_sale_body(), headers=h)

        resp = client.post(f"{POS}/outbox/restore", json=[{"total": "5.00"}], headers=h)
        assert resp.status_code == 400
        assert "not a valid sale snapshot" in resp.json()["detail"]
        assert client.get(f"{POS}/sync/status", headers=h).json()["pending"] == 1
