from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from kenpos.app.api.deps import (
    get_connectivity,
    get_current_user,
    get_ledger_client,
    get_pos_config,
)
from kenpos.app.core.database import get_db
from kenpos.app.core.exceptions import (
    InvalidBackup,
    NoActiveShift,
    PersistenceError,
    ShiftAlreadyActive,
    ShiftNotClosed,
)
from kenpos.app.core.pos_config import PosConfig
from kenpos.app.models.user import User
from kenpos.app.schemas.pos import (
    CartLineIn,
    CartLineOut,
    ConnectivityRequest,
    DiscountIn,
    QuoteRequest,
    SaleOut,
    SaleRequest,
    ShiftCloseRequest,
    ShiftOpenRequest,
    ShiftOut,
    ShiftReport,
    SyncResultOut,
    SyncStatusOut,
    TotalsOut,
)
from kenpos.app.services.connectivity import ConnectivityMonitor
from kenpos.app.services.ledger_client import LedgerClient
from kenpos.app.services.outbox import (
    clear_cart,
    export_outbox,
    load_cart,
    pending_count,
    restore_outbox,
    save_cart,
    sync_pending_sales,
)
from kenpos.app.services.pricing import Discount
from kenpos.app.services.repositories import ShiftRepository
from kenpos.app.services.sales import commit_sale, get_sale, quote
from kenpos.app.services.shifts import (
    close_shift,
    get_active_shift,
    list_shifts,
    shift_report,
    start_shift,
)

router = APIRouter()


def _discount(payload: DiscountIn | None) -> Discount | None:
    if payload is None:
        return None
    return Discount(type=payload.type, value=payload.value)


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


# ─── Quote & working cart ────────────────────────────────────────────────────


@router.post("/quote", response_model=TotalsOut)
def quote_cart(
    payload: QuoteRequest,
    config: PosConfig = Depends(get_pos_config),
    _current_user: User = Depends(get_current_user),
) -> TotalsOut:
    try:
        totals = quote(payload.lines, _discount(payload.discount), config)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return TotalsOut.model_validate(totals)


@router.get("/cart", response_model=list[CartLineOut])
def get_cart(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[CartLineOut]:
    return [CartLineOut.model_validate(line) for line in load_cart(db)]


@router.put("/cart")
def put_cart(
    lines: list[CartLineIn],
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return {"saved": save_cart(db, lines), "count": len(lines)}


@router.delete("/cart", status_code=status.HTTP_204_NO_CONTENT)
def delete_cart(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> None:
    try:
        clear_cart(db)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


# ─── Sales ───────────────────────────────────────────────────────────────────


@router.post("/sale", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    payload: SaleRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    config: PosConfig = Depends(get_pos_config),
    connectivity: ConnectivityMonitor = Depends(get_connectivity),
    ledger_client: LedgerClient = Depends(get_ledger_client),
) -> SaleOut:
    shift = ShiftRepository(db).active_for(current_user.id)
    try:
        sale = commit_sale(
            db,
            operator=current_user,
            shift=shift,
            lines=payload.lines,
            payments=payload.payments,
            config=config,
            connectivity=connectivity,
            ledger_client=ledger_client,
            customer_id=payload.customer_id,
            discount=_discount(payload.discount),
            points_to_redeem=payload.points_to_redeem,
            quotation_id=payload.quotation_id,
            ip_address=_client_ip(request),
        )
    except NoActiveShift as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return SaleOut.model_validate(sale)


@router.get("/sales/{sale_id}", response_model=SaleOut)
def read_sale(
    sale_id: str,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> SaleOut:
    sale = get_sale(db, sale_id)
    if sale is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sale not found")
    return SaleOut.model_validate(sale)


# ─── Shifts ──────────────────────────────────────────────────────────────────


@router.get("/shifts/active", response_model=ShiftOut | None)
def get_my_active_shift(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ShiftOut | None:
    shift = get_active_shift(db, current_user.id)
    return ShiftOut.model_validate(shift) if shift else None


@router.post("/shifts/open", response_model=ShiftOut, status_code=status.HTTP_201_CREATED)
def open_new_shift(
    payload: ShiftOpenRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ShiftOut:
    try:
        return start_shift(
            db,
            operator=current_user,
            starting_float=payload.starting_float,
            ip_address=_client_ip(request),
        )
    except ShiftAlreadyActive as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/shifts/close", response_model=ShiftReport)
def close_my_shift(
    payload: ShiftCloseRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ShiftReport:
    try:
        return close_shift(
            db,
            operator=current_user,
            actual_cash=payload.actual_cash,
            ip_address=_client_ip(request),
        )
    except NoActiveShift as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/shifts", response_model=list[ShiftOut])
def get_all_shifts(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[ShiftOut]:
    return list_shifts(db)


@router.get("/shifts/{shift_id}/report", response_model=ShiftReport)
def get_shift_report(
    shift_id: str,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> ShiftReport:
    shift = ShiftRepository(db).get(shift_id)
    if shift is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shift not found")
    try:
        return shift_report(shift)
    except ShiftNotClosed as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


# ─── Offline sync ────────────────────────────────────────────────────────────


@router.get("/sync/status", response_model=SyncStatusOut)
def sync_status(
    db: Session = Depends(get_db),
    connectivity: ConnectivityMonitor = Depends(get_connectivity),
    _current_user: User = Depends(get_current_user),
) -> SyncStatusOut:
    return SyncStatusOut(pending=pending_count(db), online=connectivity.is_online())


@router.post("/sync", response_model=SyncResultOut)
def run_sync(
    db: Session = Depends(get_db),
    connectivity: ConnectivityMonitor = Depends(get_connectivity),
    ledger_client: LedgerClient = Depends(get_ledger_client),
    _current_user: User = Depends(get_current_user),
) -> SyncResultOut:
    try:
        result = sync_pending_sales(db, ledger_client, connectivity=connectivity)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return SyncResultOut(success=result.success, failed=result.failed)


@router.post("/connectivity", response_model=SyncStatusOut)
def report_connectivity(
    payload: ConnectivityRequest,
    db: Session = Depends(get_db),
    connectivity: ConnectivityMonitor = Depends(get_connectivity),
    _current_user: User = Depends(get_current_user),
) -> SyncStatusOut:
    connectivity.set_online(payload.online)
    return SyncStatusOut(pending=pending_count(db), online=connectivity.is_online())


# ─── Backup & restore ────────────────────────────────────────────────────────


@router.get("/outbox/export")
def export_queue(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict[str, Any]]:
    return export_outbox(db)


@router.post("/outbox/restore")
def restore_queue(
    snapshots: list[dict[str, Any]],
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict[str, int]:
    try:
        return {"restored": restore_outbox(db, snapshots)}
    except InvalidBackup as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
