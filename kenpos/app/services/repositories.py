"""Session-bound accessors for the records the engine reads and writes.

Each repository is a thin wrapper over one ``Session``; constructing one
is free, and they hold no state of their own. Writes are flushed by the
owning transaction, never committed here.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from kenpos.app.models.customer import Customer
from kenpos.app.models.inventory import Product
from kenpos.app.models.pos import Sale, Shift, ShiftStatus


class ProductRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, product_id: str) -> Product | None:
        return self.db.get(Product, product_id)

    def get_many(self, product_ids: Iterable[str]) -> dict[str, Product]:
        ids = set(product_ids)
        if not ids:
            return {}
        rows = self.db.query(Product).filter(Product.id.in_(ids)).all()
        return {p.id: p for p in rows}

    def decrement_stock(self, product: Product, quantity: int) -> None:
        if product.is_trackable:
            product.stock -= quantity


class CustomerRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, customer_id: str) -> Customer | None:
        return self.db.get(Customer, customer_id)


class ShiftRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, shift_id: str) -> Shift | None:
        return self.db.get(Shift, shift_id)

    def active_for(self, operator_id: UUID) -> Shift | None:
        return (
            self.db.query(Shift)
            .filter(Shift.operator_id == operator_id, Shift.status == ShiftStatus.ACTIVE)
            .first()
        )

    def recent(self, limit: int = 50) -> list[Shift]:
        return self.db.query(Shift).order_by(Shift.started_at.desc()).limit(limit).all()

    def add(self, shift: Shift) -> None:
        self.db.add(shift)


class SaleRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, sale_id: str) -> Sale | None:
        return self.db.get(Sale, sale_id)

    def for_shift(self, shift_id: str) -> list[Sale]:
        return (
            self.db.query(Sale)
            .filter(Sale.shift_id == shift_id)
            .order_by(Sale.created_at)
            .all()
        )

    def add(self, sale: Sale) -> None:
        self.db.add(sale)
