"""Shift ledger: the operator's working period and cash reconciliation.

States: no shift → active → closed (terminal). Closing computes the
Z-report from the sales attached to the shift:

    expected_cash = starting_float + Σ cash tendered − Σ change given

Cash ``SalePayment.amount`` is already net of change, so the raw
``tendered`` figure is used here; subtracting change from the net amount
would count it twice.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from kenpos.app.core.exceptions import (
    InvalidAmount,
    NoActiveShift,
    SaleAlreadyAttached,
    ShiftAlreadyActive,
    ShiftNotClosed,
)
from kenpos.app.core.identifiers import new_shift_id
from kenpos.app.core.money import ZERO, quantize_money, to_decimal
from kenpos.app.models.pos import PaymentMethod, Sale, Shift, ShiftStatus
from kenpos.app.models.user import User
from kenpos.app.schemas.pos import ShiftOut, ShiftReport
from kenpos.app.services.audit import log_action
from kenpos.app.services.repositories import SaleRepository, ShiftRepository

logger = logging.getLogger(__name__)


def _shift_to_out(shift: Shift) -> ShiftOut:
    return ShiftOut.model_validate(shift)


def shift_report(shift: Shift) -> ShiftReport:
    """Z-report of a closed shift."""
    if shift.status != ShiftStatus.CLOSED:
        raise ShiftNotClosed(f"Shift {shift.id} is still active")
    return ShiftReport(
        id=shift.id,
        operator_id=shift.operator_id,
        operator_name=shift.operator_name,
        started_at=shift.started_at,
        ended_at=shift.ended_at,
        starting_float=quantize_money(shift.starting_float),
        sale_ids=shift.sale_ids,
        sale_count=shift.sale_count or 0,
        payment_breakdown={k: Decimal(v) for k, v in (shift.payment_breakdown or {}).items()},
        total_sales=quantize_money(shift.total_sales),
        total_cash_tendered=quantize_money(shift.total_cash_tendered),
        total_change_given=quantize_money(shift.total_change_given),
        expected_cash=quantize_money(shift.expected_cash),
        actual_cash=quantize_money(shift.actual_cash),
        variance=quantize_money(shift.variance),
    )


def get_active_shift(db: Session, operator_id: UUID) -> Shift | None:
    return ShiftRepository(db).active_for(operator_id)


def has_active_shift(db: Session, operator_id: UUID) -> bool:
    """True while the operator must not log out."""
    return get_active_shift(db, operator_id) is not None


def require_active_shift(db: Session, operator_id: UUID) -> Shift:
    shift = get_active_shift(db, operator_id)
    if shift is None:
        raise NoActiveShift()
    return shift


def start_shift(
    db: Session,
    operator: User,
    starting_float: Decimal,
    ip_address: str | None = None,
) -> ShiftOut:
    """Open a new shift for *operator* with *starting_float* in the drawer."""
    if get_active_shift(db, operator.id) is not None:
        raise ShiftAlreadyActive()
    starting_float = to_decimal(starting_float)
    if starting_float < 0:
        raise InvalidAmount("Starting float must be non-negative")

    shift = Shift(
        id=new_shift_id(),
        operator_id=operator.id,
        operator_name=operator.name,
        status=ShiftStatus.ACTIVE,
        started_at=datetime.now(timezone.utc),
        starting_float=starting_float,
    )
    ShiftRepository(db).add(shift)
    db.flush()

    log_action(
        db,
        user_id=operator.id,
        action="SHIFT_START",
        resource_type="shifts",
        resource_id=shift.id,
        ip_address=ip_address,
        changes={"starting_float": str(quantize_money(starting_float))},
    )
    db.commit()
    db.refresh(shift)
    logger.info("Shift %s started by %s with float %s", shift.id, operator.name, starting_float)
    return _shift_to_out(shift)


def attach_sale(shift: Shift, sale: Sale) -> None:
    """Record *sale* against *shift*. Does not flush or commit."""
    if shift.status != ShiftStatus.ACTIVE:
        raise NoActiveShift(f"Shift {shift.id} is not active")
    if sale.shift_id is not None and sale.shift_id != shift.id:
        raise SaleAlreadyAttached(f"Sale {sale.id} already belongs to shift {sale.shift_id}")
    if sale in shift.sales:
        return
    sale.shift = shift


def close_shift(
    db: Session,
    operator: User,
    actual_cash: Decimal,
    ip_address: str | None = None,
) -> ShiftReport:
    """Close the operator's active shift and produce its Z-report.

    A non-zero variance does not block closing; it is logged and reported.
    """
    shift = require_active_shift(db, operator.id)
    actual_cash = to_decimal(actual_cash)

    sales = SaleRepository(db).for_shift(shift.id)
    breakdown: dict[str, Decimal] = defaultdict(lambda: ZERO)
    cash_tendered = ZERO
    change_given = ZERO
    total_sales = ZERO
    for sale in sales:
        for payment in sale.payments:
            breakdown[payment.method.value] += payment.amount
            if payment.method == PaymentMethod.CASH:
                cash_tendered += payment.tendered if payment.tendered is not None else payment.amount
        change_given += sale.change
        total_sales += sale.total

    expected = shift.starting_float + cash_tendered - change_given
    variance = quantize_money(actual_cash - expected)

    shift.status = ShiftStatus.CLOSED
    shift.ended_at = datetime.now(timezone.utc)
    shift.payment_breakdown = {k: str(quantize_money(v)) for k, v in breakdown.items()}
    shift.sale_count = len(sales)
    shift.total_sales = total_sales
    shift.total_cash_tendered = cash_tendered
    shift.total_change_given = change_given
    shift.expected_cash = expected
    shift.actual_cash = actual_cash
    shift.variance = variance

    log_action(
        db,
        user_id=operator.id,
        action="SHIFT_END",
        resource_type="shifts",
        resource_id=shift.id,
        ip_address=ip_address,
        changes={
            "expected_cash": str(quantize_money(expected)),
            "actual_cash": str(quantize_money(actual_cash)),
            "variance": str(variance),
            "sale_count": len(sales),
        },
    )
    db.commit()
    db.refresh(shift)

    if variance != 0:
        logger.warning(
            "Shift %s closed with cash variance %s (expected %s, counted %s)",
            shift.id,
            variance,
            quantize_money(expected),
            quantize_money(actual_cash),
        )
    else:
        logger.info("Shift %s closed balanced", shift.id)
    return shift_report(shift)


def list_shifts(db: Session) -> list[ShiftOut]:
    """Return recent shifts, most recent first."""
    return [_shift_to_out(s) for s in ShiftRepository(db).recent()]
