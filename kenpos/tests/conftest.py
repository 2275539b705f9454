"""Shared test fixtures.

Every test gets a fresh in-memory SQLite schema; services commit freely and
nothing leaks between tests. The remote ledger is an ``httpx.MockTransport``
backed by ``FakeLedger`` so tests can script its replies.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from kenpos.app.api.deps import (
    get_connectivity,
    get_ledger_client,
    get_pos_config,
)
from kenpos.app.core.database import get_db
from kenpos.app.core.pos_config import PosConfig
from kenpos.app.core.security import create_access_token, get_password_hash
from kenpos.app.main import app
from kenpos.app.models.customer import Customer
from kenpos.app.models.inventory import PricingType, Product, ProductKind
from kenpos.app.models.pos import PaymentMethod, Shift
from kenpos.app.models.registry import Base
from kenpos.app.models.user import RoleEnum, User
from kenpos.app.schemas.pos import CartLineIn, PaymentEntry
from kenpos.app.services.connectivity import ConnectivityMonitor
from kenpos.app.services.ledger_client import LedgerClient
from kenpos.app.services.repositories import ShiftRepository
from kenpos.app.services.shifts import start_shift

LEDGER_URL = "http://ledger.test/api"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

_PASSWORD_HASH = get_password_hash("pass")


# ─── DB session on a fresh schema ─────────────────────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# ─── Operators ───────────────────────────────────────────────────────────────


def _make_user(db: Session, username: str, name: str) -> User:
    user = User(
        username=username,
        name=name,
        hashed_password=_PASSWORD_HASH,
        role=RoleEnum.CASHIER,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def operator(db: Session) -> User:
    return _make_user(db, "cashier1", "Amina Otieno")


@pytest.fixture()
def other_operator(db: Session) -> User:
    return _make_user(db, "cashier2", "Brian Mwangi")


@pytest.fixture()
def operator_token(operator: User) -> str:
    return create_access_token(subject=str(operator.id))


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}


# ─── Catalog & customers ─────────────────────────────────────────────────────


@pytest.fixture()
def products(db: Session) -> dict[str, Product]:
    items = {
        "bread": Product(
            id="p-bread",
            name="Bread",
            sku="BRD-001",
            price=Decimal("116"),
            pricing_type=PricingType.INCLUSIVE,
            cost_price=Decimal("80"),
            stock=10,
        ),
        "soda": Product(
            id="p-soda",
            name="Soda Crate",
            sku="SDA-001",
            price=Decimal("100"),
            pricing_type=PricingType.EXCLUSIVE,
            cost_price=Decimal("70"),
            stock=5,
        ),
        "tv": Product(
            id="p-tv",
            name="Television",
            sku="TV-001",
            price=Decimal("1200"),
            pricing_type=PricingType.INCLUSIVE,
            cost_price=Decimal("900"),
            stock=3,
        ),
        "repair": Product(
            id="p-repair",
            name="Phone Repair",
            price=Decimal("50"),
            pricing_type=PricingType.EXCLUSIVE,
            product_kind=ProductKind.SERVICE,
            stock=0,
        ),
    }
    db.add_all(items.values())
    db.commit()
    return items


@pytest.fixture()
def customers(db: Session) -> dict[str, Customer]:
    items = {
        "walk_in": Customer(id="cust001", name="Walk-in Customer", loyalty_points=0),
        "loyal": Customer(id="cust-loyal", name="Grace Wanjiku", loyalty_points=500),
        "new": Customer(id="cust-new", name="Peter Kamau", loyalty_points=50),
    }
    db.add_all(items.values())
    db.commit()
    return items


# ─── Engine collaborators ────────────────────────────────────────────────────


@pytest.fixture()
def config() -> PosConfig:
    return PosConfig()


@pytest.fixture()
def connectivity() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


class FakeLedger:
    """Scriptable stand-in for the remote ledger's HTTP API.

    ``script`` is consumed one entry per ``POST /sales``: an int is a status
    code, an exception is raised from the transport. When it runs out,
    ``default_status`` is used. ``on_submit`` runs after every POST.
    """

    def __init__(self) -> None:
        self.received: list[dict] = []
        self.idempotency_keys: list[str | None] = []
        self.authorization: list[str | None] = []
        self.deleted: list[str] = []
        self.script: list[int | Exception] = []
        self.default_status = 201
        self.healthy = True
        self.on_submit = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and request.url.path.endswith("/health"):
            return httpx.Response(200 if self.healthy else 503)
        if request.method == "DELETE":
            self.deleted.append(request.url.path.rsplit("/", 1)[-1])
            return httpx.Response(204)

        outcome = self.script.pop(0) if self.script else self.default_status
        self.idempotency_keys.append(request.headers.get("Idempotency-Key"))
        self.authorization.append(request.headers.get("Authorization"))
        try:
            if isinstance(outcome, Exception):
                raise outcome
            if outcome in (200, 201, 202):
                self.received.append(json.loads(request.content))
            return httpx.Response(outcome, json={"status": outcome})
        finally:
            if self.on_submit is not None:
                self.on_submit()


@pytest.fixture()
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def ledger_client(fake_ledger: FakeLedger) -> Generator[LedgerClient, None, None]:
    client = LedgerClient(
        LEDGER_URL,
        api_token="terminal-token",
        timeout=1.0,
        transport=httpx.MockTransport(fake_ledger),
    )
    yield client
    client.close()


# ─── Shifts ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def shift(db: Session, operator: User) -> Shift:
    opened = start_shift(db, operator=operator, starting_float=Decimal("5000"))
    return ShiftRepository(db).get(opened.id)


# ─── Builders ────────────────────────────────────────────────────────────────


def cart_line(product: Product, quantity: int = 1) -> CartLineIn:
    return CartLineIn(
        product_id=product.id,
        name=product.name,
        quantity=quantity,
        unit_price=product.price,
        pricing_type=product.pricing_type,
        product_kind=product.product_kind,
        unit_cost=product.cost_price,
    )


def cash(amount: str | Decimal) -> PaymentEntry:
    return PaymentEntry(method=PaymentMethod.CASH, amount=Decimal(amount))


def card(amount: str | Decimal, **details: str) -> PaymentEntry:
    return PaymentEntry(method=PaymentMethod.CARD, amount=Decimal(amount), details=details or None)


# ─── API client ──────────────────────────────────────────────────────────────


@pytest.fixture()
def client(
    db: Session,
    config: PosConfig,
    connectivity: ConnectivityMonitor,
    ledger_client: LedgerClient,
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session, monitor and ledger."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_pos_config] = lambda: config
    app.dependency_overrides[get_connectivity] = lambda: connectivity
    app.dependency_overrides[get_ledger_client] = lambda: ledger_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
