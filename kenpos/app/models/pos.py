from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from kenpos.app.core.database import Base
from kenpos.app.core.exceptions import ImmutableRecordError
from kenpos.app.models.inventory import PricingType, ProductKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentMethod(str, enum.Enum):
    CASH = "Cash"
    CARD = "Card"
    MPESA = "M-Pesa"
    POINTS = "Points"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ShiftStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Shift(Base):
    """One operator's working period and, once closed, its Z-report."""

    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    operator_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    operator_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ShiftStatus] = mapped_column(
        Enum(ShiftStatus), nullable=False, default=ShiftStatus.ACTIVE
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    starting_float: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )

    # Populated once by close
    payment_breakdown: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)
    sale_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_sales: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    total_cash_tendered: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    total_change_given: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    expected_cash: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    actual_cash: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    variance: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )

    sales: Mapped[list[Sale]] = relationship(
        back_populates="shift", order_by="Sale.created_at"
    )

    __table_args__ = (
        CheckConstraint("starting_float >= 0", name="ck_shift_float_non_negative"),
        Index("ix_shifts_operator", "operator_id"),
        Index("ix_shifts_status", "status"),
        Index("ix_shifts_started_at", "started_at"),
    )

    @property
    def sale_ids(self) -> list[str]:
        return [s.id for s in self.sales]


class Sale(Base):
    """A committed sale. Only ``synced`` may change after insertion."""

    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    shift_id: Mapped[str] = mapped_column(ForeignKey("shifts.id"), nullable=False)
    customer_id: Mapped[str | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    cashier_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    cashier_name: Mapped[str] = mapped_column(String(255), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    discount_type: Mapped[DiscountType | None] = mapped_column(
        Enum(DiscountType), nullable=True
    )
    discount_value: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    tax: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    change: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )

    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    points_balance_after: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    quotation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    synced: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    shift: Mapped[Shift] = relationship(back_populates="sales")
    lines: Mapped[list[SaleLine]] = relationship(
        back_populates="sale", order_by="SaleLine.position", cascade="all, delete-orphan"
    )
    payments: Mapped[list[SalePayment]] = relationship(
        back_populates="sale", order_by="SalePayment.id", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("discount_amount >= 0", name="ck_sale_discount_non_negative"),
        CheckConstraint("discount_amount <= subtotal", name="ck_sale_discount_within_subtotal"),
        CheckConstraint('"change" >= 0', name="ck_sale_change_non_negative"),
        Index("ix_sales_shift", "shift_id"),
        Index("ix_sales_customer", "customer_id"),
        Index("ix_sales_created_at", "created_at"),
        Index("ix_sales_synced", "synced"),
    )


class SaleLine(Base):
    """Snapshot of a cart line as it was when the sale was committed."""

    __tablename__ = "sale_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sale_id: Mapped[str] = mapped_column(ForeignKey("sales.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_kind: Mapped[ProductKind] = mapped_column(Enum(ProductKind), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    pricing_type: Mapped[PricingType] = mapped_column(Enum(PricingType), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )

    sale: Mapped[Sale] = relationship(back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_line_quantity_positive"),
        Index("ix_sale_lines_sale", "sale_id"),
    )


class SalePayment(Base):
    """One tender applied to a sale.

    ``amount`` is what the tender contributes to the sale total. For cash
    it is net of change; the raw cash handed over is kept in ``tendered``
    so the drawer can be reconciled without netting change twice.
    """

    __tablename__ = "sale_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sale_id: Mapped[str] = mapped_column(ForeignKey("sales.id"), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    tendered: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=4), nullable=True
    )
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    sale: Mapped[Sale] = relationship(back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_sale_payment_amount_non_negative"),
        Index("ix_sale_payments_sale", "sale_id"),
        Index("ix_sale_payments_method", "method"),
    )


# ─── Immutability guards ────────────────────────────────────────────────────


@event.listens_for(Shift, "before_update")
def _reject_closed_shift_update(mapper: Any, connection: Any, target: Shift) -> None:
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if previous == ShiftStatus.CLOSED:
        raise ImmutableRecordError(f"Shift {target.id} is closed")


@event.listens_for(Session, "before_flush")
def _reject_snapshot_changes(session: Session, flush_context: Any, instances: Any) -> None:
    """Lines and payments are written once, together with their sale.

    A persistent ``SaleLine`` or ``SalePayment`` is never updated or
    deleted, a new one may not join a sale that is already stored, and
    no sale may be added to a closed shift.
    """
    for obj in session.new:
        if isinstance(obj, (SaleLine, SalePayment)):
            parent = obj.sale
            if parent is not None and inspect(parent).persistent:
                raise ImmutableRecordError(
                    f"Sale {parent.id} is immutable (attempted to add a {type(obj).__name__})"
                )
        elif isinstance(obj, Sale):
            with session.no_autoflush:
                shift = obj.shift
                if shift is None and obj.shift_id is not None:
                    shift = session.get(Shift, obj.shift_id)
            if shift is not None and shift.status == ShiftStatus.CLOSED:
                raise ImmutableRecordError(f"Shift {shift.id} is closed")

    for obj in session.dirty:
        if isinstance(obj, (SaleLine, SalePayment)) and session.is_modified(obj):
            raise ImmutableRecordError(
                f"Sale {obj.sale_id} is immutable (attempted to change a {type(obj).__name__})"
            )

    for obj in session.deleted:
        if isinstance(obj, (Sale, SaleLine, SalePayment)):
            sale_id = obj.id if isinstance(obj, Sale) else obj.sale_id
            raise ImmutableRecordError(
                f"Sale {sale_id} is immutable (attempted to delete a {type(obj).__name__})"
            )


@event.listens_for(Sale, "before_update")
def _reject_committed_sale_update(mapper: Any, connection: Any, target: Sale) -> None:
    state = inspect(target)
    for attr in state.mapper.column_attrs:
        if attr.key == "synced":
            continue
        if state.attrs[attr.key].history.has_changes():
            raise ImmutableRecordError(
                f"Sale {target.id} is immutable (attempted change to {attr.key})"
            )
