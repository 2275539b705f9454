from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from kenpos.app.models.inventory import PricingType, ProductKind
from kenpos.app.models.pos import DiscountType, PaymentMethod, ShiftStatus


# ─── Cart & quote ────────────────────────────────────────────────────────────


class CartLineIn(BaseModel):
    product_id: str
    name: str = ""
    quantity: int
    unit_price: Decimal
    pricing_type: PricingType
    product_kind: ProductKind = ProductKind.INVENTORY
    unit_cost: Decimal = Decimal("0")

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v

    @field_validator("unit_price", "unit_cost")
    @classmethod
    def money_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Prices must be non-negative")
        return v


class CartLineOut(CartLineIn):
    model_config = ConfigDict(from_attributes=True)


class DiscountIn(BaseModel):
    type: DiscountType
    value: Decimal


class QuoteRequest(BaseModel):
    lines: list[CartLineIn]
    discount: DiscountIn | None = None


class TotalsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax: Decimal
    total: Decimal


# ─── Sale ────────────────────────────────────────────────────────────────────


class PaymentEntry(BaseModel):
    """A tender offered at checkout. For cash, ``amount`` is what was handed over."""

    method: PaymentMethod
    amount: Decimal
    details: dict[str, Any] | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Payment amount must be greater than zero")
        return v


class SaleRequest(BaseModel):
    lines: list[CartLineIn]
    customer_id: str | None = None
    discount: DiscountIn | None = None
    payments: list[PaymentEntry] = []
    points_to_redeem: int = 0
    quotation_id: str | None = None

    @field_validator("lines")
    @classmethod
    def at_least_one_line(cls, v: list[CartLineIn]) -> list[CartLineIn]:
        if not v:
            raise ValueError("Cart must contain at least one item")
        return v

    @field_validator("points_to_redeem")
    @classmethod
    def points_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Points to redeem must be non-negative")
        return v


class SaleLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    product_name: str
    product_kind: ProductKind
    quantity: int
    unit_price: Decimal
    pricing_type: PricingType
    unit_cost: Decimal


class SalePaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    method: PaymentMethod
    amount: Decimal
    tendered: Decimal | None = None
    details: dict[str, Any] | None = None


class SaleOut(BaseModel):
    """Full sale snapshot. Also the wire format sent to the remote ledger."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    shift_id: str
    customer_id: str | None
    cashier_id: UUID
    cashier_name: str
    lines: list[SaleLineOut]
    subtotal: Decimal
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None
    discount_amount: Decimal
    tax: Decimal
    total: Decimal
    payments: list[SalePaymentOut]
    change: Decimal
    points_earned: int
    points_used: int
    points_value: Decimal
    points_balance_after: int
    quotation_id: str | None = None
    synced: bool
    created_at: datetime


# ─── Shifts ──────────────────────────────────────────────────────────────────


class ShiftOpenRequest(BaseModel):
    starting_float: Decimal

    @field_validator("starting_float")
    @classmethod
    def float_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Starting float must be non-negative")
        return v


class ShiftCloseRequest(BaseModel):
    actual_cash: Decimal

    @field_validator("actual_cash")
    @classmethod
    def cash_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Counted cash must be non-negative")
        return v


class ShiftOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    operator_id: UUID
    operator_name: str
    status: ShiftStatus
    started_at: datetime
    ended_at: datetime | None = None
    starting_float: Decimal
    sale_ids: list[str]


class ShiftReport(BaseModel):
    """Z-report produced when a shift closes."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    operator_id: UUID
    operator_name: str
    started_at: datetime
    ended_at: datetime
    starting_float: Decimal
    sale_ids: list[str]
    sale_count: int
    payment_breakdown: dict[str, Decimal]
    total_sales: Decimal
    total_cash_tendered: Decimal
    total_change_given: Decimal
    expected_cash: Decimal
    actual_cash: Decimal
    variance: Decimal

    @computed_field
    @property
    def is_balanced(self) -> bool:
        return self.variance == 0


# ─── Sync ────────────────────────────────────────────────────────────────────


class SyncStatusOut(BaseModel):
    pending: int
    online: bool


class SyncResultOut(BaseModel):
    success: int
    failed: int


class ConnectivityRequest(BaseModel):
    online: bool
