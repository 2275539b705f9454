from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from kenpos.app.core.database import Base


class PricingType(str, enum.Enum):
    INCLUSIVE = "inclusive"
    EXCLUSIVE = "exclusive"


class ProductKind(str, enum.Enum):
    INVENTORY = "Inventory"
    SERVICE = "Service"


class Product(Base):
    """Catalog record as cached on the terminal.

    The transaction engine only ever writes ``stock``; everything else is
    maintained by the catalog screens. ``SERVICE`` products are never
    stock-checked.
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(precision=20, scale=4), nullable=False)
    pricing_type: Mapped[PricingType] = mapped_column(
        Enum(PricingType), nullable=False, default=PricingType.INCLUSIVE
    )
    product_kind: Mapped[ProductKind] = mapped_column(
        Enum(ProductKind), nullable=False, default=ProductKind.INVENTORY
    )
    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False, default=Decimal("0")
    )
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_product_price_non_negative"),
        CheckConstraint("cost_price >= 0", name="ck_product_cost_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        Index("ix_products_sku", "sku"),
    )

    @property
    def is_trackable(self) -> bool:
        return self.product_kind == ProductKind.INVENTORY
