from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from kenpos.app.core.database import Base
from kenpos.app.models.inventory import PricingType, ProductKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"


class CartLine(Base):
    """Working-cart line, keyed by product. Rewritten on every cart edit."""

    __tablename__ = "cart_lines"

    product_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    pricing_type: Mapped[PricingType] = mapped_column(Enum(PricingType), nullable=False)
    product_kind: Mapped[ProductKind] = mapped_column(
        Enum(ProductKind), nullable=False, default=ProductKind.INVENTORY
    )
    unit_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_line_quantity_positive"),
    )


class OutboxEntry(Base):
    """A sale committed while offline, awaiting remote acknowledgment.

    ``sequence`` is the FIFO order; ``sale_id`` is unique so the same sale
    can never be queued twice. ``payload`` is the full sale snapshot.
    """

    __tablename__ = "outbox_entries"

    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sale_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    status: Mapped[OutboxStatus] = mapped_column(
        Enum(OutboxStatus), nullable=False, default=OutboxStatus.PENDING
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_outbox_status", "status"),
        Index("ix_outbox_created_at", "created_at"),
    )
