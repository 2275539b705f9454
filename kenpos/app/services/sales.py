"""Sale commit pipeline.

``commit_sale`` turns a priced cart into an immutable ``Sale``. All of
its effects happen in one database transaction:

    stock decrement (inventory lines only)
    customer loyalty balance / spend
    sale + lines + payments, attached to the active shift
    delivery: remote ledger when online, otherwise the outbox
    working cart cleared, audit row

Validation runs first and touches nothing. Any failure after that rolls
the whole transaction back; if the remote ledger had already accepted
the sale, a retraction is sent.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kenpos.app.core.exceptions import (
    EmptyCart,
    InsufficientPayment,
    InsufficientStock,
    InvalidDiscount,
    InvalidPayment,
    InvalidRedemption,
    NoActiveShift,
    PersistenceError,
    SyncError,
    UnknownProduct,
    ValidationError,
)
from kenpos.app.core.identifiers import new_sale_id
from kenpos.app.core.money import ZERO, quantize_money, to_decimal
from kenpos.app.core.pos_config import PosConfig
from kenpos.app.models.customer import Customer
from kenpos.app.models.inventory import Product
from kenpos.app.models.outbox import CartLine
from kenpos.app.models.pos import (
    DiscountType,
    PaymentMethod,
    Sale,
    SaleLine,
    SalePayment,
    Shift,
    ShiftStatus,
)
from kenpos.app.models.user import User
from kenpos.app.schemas.pos import CartLineIn, PaymentEntry
from kenpos.app.services.audit import log_action
from kenpos.app.services.connectivity import ConnectivityMonitor
from kenpos.app.services.ledger_client import LedgerClient
from kenpos.app.services.outbox import enqueue_sale, sale_snapshot
from kenpos.app.services.pricing import CartTotals, Discount, cart_totals
from kenpos.app.services.repositories import (
    CustomerRepository,
    ProductRepository,
    SaleRepository,
)
from kenpos.app.services.shifts import attach_sale

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LoyaltyOutcome:
    applies: bool
    points_used: int
    points_value: Decimal
    points_earned: int
    balance_after: int


@dataclass(frozen=True)
class Settlement:
    payments: list[SalePayment]
    change: Decimal


# ─── Quote ───────────────────────────────────────────────────────────────────


def validate_discount(discount: Discount | None, config: PosConfig) -> None:
    """Raise ``InvalidDiscount`` unless *discount* is within configured bounds."""
    if discount is None:
        return
    value = to_decimal(discount.value)
    if value < 0:
        raise InvalidDiscount("Discount value must be non-negative")
    if value == 0:
        return
    rules = config.discount
    if not rules.enabled:
        raise InvalidDiscount("Discounts are disabled")
    if DiscountType(discount.type) != rules.type:
        raise InvalidDiscount(f"Only {rules.type.value} discounts are allowed")
    if value > rules.max_value:
        raise InvalidDiscount(f"Discount {value} exceeds the maximum of {rules.max_value}")
    if discount.type == DiscountType.PERCENTAGE and value > HUNDRED:
        raise InvalidDiscount("Percentage discount cannot exceed 100")


def quote(
    lines: Sequence[CartLineIn | CartLine],
    discount: Discount | None,
    config: PosConfig,
) -> CartTotals:
    """Live totals for the cart as currently edited. Read-only."""
    validate_discount(discount, config)
    return cart_totals(lines, discount, config.vat_rate)


# ─── Validation helpers ─────────────────────────────────────────────────────


def _load_products(db: Session, lines: Sequence[CartLineIn]) -> dict[str, Product]:
    products = ProductRepository(db).get_many(line.product_id for line in lines)
    requested: dict[str, int] = defaultdict(int)
    for line in lines:
        if line.product_id not in products:
            raise UnknownProduct(f"Product {line.product_id} not found")
        requested[line.product_id] += line.quantity

    for product_id, quantity in requested.items():
        product = products[product_id]
        if product.is_trackable and product.stock < quantity:
            raise InsufficientStock(
                f"Insufficient stock for '{product.name}': "
                f"{product.stock} available, {quantity} requested"
            )
    return products


def _is_walk_in(customer: Customer | None, config: PosConfig) -> bool:
    return customer is None or customer.id == config.walk_in_customer_id


def resolve_loyalty(
    customer: Customer | None,
    points_to_redeem: int,
    total: Decimal,
    config: PosConfig,
) -> LoyaltyOutcome:
    """Points redeemed against *total* and points earned on the remainder."""
    rules = config.loyalty
    applies = rules.enabled and not _is_walk_in(customer, config)
    balance = customer.loyalty_points if customer is not None else 0

    if points_to_redeem < 0:
        raise InvalidRedemption("Points to redeem must be non-negative")
    if points_to_redeem and not applies:
        raise InvalidRedemption("Loyalty redemption is not available for this sale")
    if points_to_redeem:
        if balance < rules.min_redeemable_points:
            raise InvalidRedemption(
                f"At least {rules.min_redeemable_points} points are needed to redeem"
            )
        cap_value = total * rules.max_redemption_percentage / HUNDRED
        max_points = min(balance, math.floor(cap_value / rules.redemption_rate))
        if points_to_redeem > max_points:
            raise InvalidRedemption(
                f"Cannot redeem {points_to_redeem} points; the maximum for this sale is {max_points}"
            )

    points_value = quantize_money(points_to_redeem * rules.redemption_rate)
    if not applies:
        return LoyaltyOutcome(False, 0, ZERO, 0, balance)

    earned = math.floor((total - points_value) / rules.points_per_unit)
    return LoyaltyOutcome(
        applies=True,
        points_used=points_to_redeem,
        points_value=points_value,
        points_earned=earned,
        balance_after=balance - points_to_redeem + earned,
    )


def settle_payments(
    entries: Sequence[PaymentEntry],
    amount_due: Decimal,
    points_value: Decimal,
) -> Settlement:
    """Check tenders against *amount_due* and compute change.

    Only cash produces change. Non-cash tenders may not exceed what is
    due. All cash entries collapse into one payment whose ``amount`` is
    net of change and whose ``tendered`` is the raw cash received.
    """
    cash_tendered = ZERO
    cash_details = None
    non_cash: list[SalePayment] = []
    for entry in entries:
        amount = quantize_money(entry.amount)
        if amount <= 0:
            raise InvalidPayment("Payment amount must be greater than zero")
        if entry.method == PaymentMethod.POINTS:
            raise InvalidPayment("Points are redeemed through points_to_redeem, not as a payment")
        if entry.method == PaymentMethod.CASH:
            cash_tendered += amount
            cash_details = cash_details or entry.details
        else:
            non_cash.append(
                SalePayment(method=entry.method, amount=amount, details=entry.details)
            )

    non_cash_total = sum((p.amount for p in non_cash), ZERO)
    if non_cash_total > amount_due:
        raise InvalidPayment(
            f"Non-cash payments ({non_cash_total}) exceed the amount due ({amount_due})"
        )
    paid = non_cash_total + cash_tendered
    if paid < amount_due:
        raise InsufficientPayment(f"Payment total ({paid}) is below the amount due ({amount_due})")

    change = paid - amount_due
    payments: list[SalePayment] = []
    if points_value > 0:
        payments.append(SalePayment(method=PaymentMethod.POINTS, amount=points_value))
    payments.extend(non_cash)
    if cash_tendered > 0:
        payments.append(
            SalePayment(
                method=PaymentMethod.CASH,
                amount=cash_tendered - change,
                tendered=cash_tendered,
                details=cash_details,
            )
        )
    return Settlement(payments=payments, change=change)


# ─── Commit ──────────────────────────────────────────────────────────────────


def commit_sale(
    db: Session,
    *,
    operator: User | None,
    shift: Shift | None,
    lines: Sequence[CartLineIn],
    payments: Sequence[PaymentEntry],
    config: PosConfig,
    connectivity: ConnectivityMonitor,
    ledger_client: LedgerClient | None = None,
    customer_id: str | None = None,
    discount: Discount | None = None,
    points_to_redeem: int = 0,
    quotation_id: str | None = None,
    ip_address: str | None = None,
) -> Sale:
    """Validate and commit a sale. See module docstring for the effects."""
    # ── Validate (no side effects) ───────────────────────────────────────
    if operator is None or shift is None or shift.status != ShiftStatus.ACTIVE:
        raise NoActiveShift()
    if shift.operator_id != operator.id:
        raise NoActiveShift("The active shift belongs to another operator")
    if not lines:
        raise EmptyCart()
    validate_discount(discount, config)

    products = _load_products(db, lines)
    customer = CustomerRepository(db).get(customer_id) if customer_id else None
    if customer_id and customer is None:
        raise ValidationError(f"Customer {customer_id} not found")

    totals = cart_totals(lines, discount, config.vat_rate)
    loyalty = resolve_loyalty(customer, points_to_redeem, totals.total, config)
    settlement = settle_payments(payments, totals.total - loyalty.points_value, loyalty.points_value)

    # ── Apply (single transaction) ──────────────────────────────────────
    now = datetime.now(timezone.utc)
    sale_id = new_sale_id(config.invoice_prefix)
    delivered = False
    try:
        product_repo = ProductRepository(db)
        for line in lines:
            product_repo.decrement_stock(products[line.product_id], line.quantity)

        if customer is not None:
            if loyalty.applies:
                customer.loyalty_points = loyalty.balance_after
            customer.total_spent = to_decimal(customer.total_spent) + totals.total
            customer.last_purchase_at = now

        sale = Sale(
            id=sale_id,
            customer_id=customer.id if customer is not None else None,
            cashier_id=operator.id,
            cashier_name=operator.name,
            subtotal=totals.subtotal,
            discount_type=discount.type if discount is not None and discount.value else None,
            discount_value=discount.value if discount is not None and discount.value else None,
            discount_amount=totals.discount_amount,
            tax=totals.tax,
            total=totals.total,
            change=settlement.change,
            points_earned=loyalty.points_earned,
            points_used=loyalty.points_used,
            points_value=loyalty.points_value,
            points_balance_after=loyalty.balance_after,
            quotation_id=quotation_id,
            synced=False,
            created_at=now,
        )
        sale.lines = [
            SaleLine(
                position=position,
                product_id=line.product_id,
                product_name=line.name or products[line.product_id].name,
                product_kind=products[line.product_id].product_kind,
                quantity=line.quantity,
                unit_price=line.unit_price,
                pricing_type=line.pricing_type,
                unit_cost=line.unit_cost,
            )
            for position, line in enumerate(lines)
        ]
        sale.payments = settlement.payments
        attach_sale(shift, sale)
        SaleRepository(db).add(sale)
        db.flush()

        if connectivity.is_online() and ledger_client is not None:
            try:
                ledger_client.submit_sale(sale_snapshot(sale))
                delivered = True
            except SyncError as exc:
                logger.warning("Ledger submission failed for %s, queueing: %s", sale_id, exc)
                connectivity.mark_offline()
        if delivered:
            sale.synced = True
        else:
            enqueue_sale(db, sale)

        db.query(CartLine).delete()
        log_action(
            db,
            user_id=operator.id,
            action="SALE_COMPLETE",
            resource_type="sales",
            resource_id=sale_id,
            ip_address=ip_address,
            changes={
                "shift_id": shift.id,
                "total": str(totals.total),
                "change": str(settlement.change),
                "payments": [
                    {"method": p.method.value, "amount": str(p.amount)}
                    for p in settlement.payments
                ],
                "customer_id": customer.id if customer is not None else None,
                "points_earned": loyalty.points_earned,
                "points_used": loyalty.points_used,
                "queued": not delivered,
            },
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        if delivered:
            _retract(ledger_client, sale_id)
        raise PersistenceError(f"Could not record sale {sale_id}") from exc
    except Exception:
        db.rollback()
        if delivered:
            _retract(ledger_client, sale_id)
        raise

    logger.info(
        "Completed sale %s for %s (%s)",
        sale_id,
        totals.total,
        "synced" if delivered else "queued offline",
    )
    return sale


def _retract(ledger_client: LedgerClient | None, sale_id: str) -> None:
    if ledger_client is None:
        return
    try:
        ledger_client.retract_sale(sale_id)
    except SyncError:
        logger.exception("Could not retract sale %s from the ledger after a failed commit", sale_id)


def get_sale(db: Session, sale_id: str) -> Sale | None:
    return SaleRepository(db).get(sale_id)
