"""Durable local storage for the working cart and for offline sales.

Two independent collections live in the terminal's database:

* ``cart_lines``: the in-progress cart, cleared and rewritten on every
  edit so a restart can rehydrate it exactly.
* ``outbox_entries``: sales committed while disconnected. Each entry
  moves PENDING → SYNCING → SYNCED and is purged once SYNCED.

The sync sweep delivers entries one at a time in creation order. Each
entry is claimed with a conditional PENDING → SYNCING update before it is
sent, so overlapping sweeps (beat, reconnect, ``POST /sync``) never send
the same entry twice. An entry left in SYNCING by an interrupted sweep is
put back to PENDING once its claim lease has lapsed; redelivery is safe
because the ledger is idempotent on sale id.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kenpos.app.core.config import settings
from kenpos.app.core.exceptions import InvalidBackup, PersistenceError, SyncError
from kenpos.app.models.outbox import CartLine, OutboxEntry, OutboxStatus
from kenpos.app.models.pos import Sale
from kenpos.app.schemas.pos import CartLineIn, SaleOut
from kenpos.app.services.audit import log_action
from kenpos.app.services.connectivity import ConnectivityMonitor
from kenpos.app.services.ledger_client import LedgerClient

logger = logging.getLogger(__name__)

_OPEN_STATES = (OutboxStatus.PENDING, OutboxStatus.SYNCING)


def sale_snapshot(sale: Sale) -> dict[str, Any]:
    """JSON-ready snapshot of a sale, as queued and as sent to the ledger."""
    return SaleOut.model_validate(sale).model_dump(mode="json")


# ─── Working cart ────────────────────────────────────────────────────────────


def _write_cart(db: Session, lines: Sequence[CartLineIn]) -> None:
    db.query(CartLine).delete()
    for position, line in enumerate(lines):
        db.add(
            CartLine(
                product_id=line.product_id,
                position=position,
                name=line.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                pricing_type=line.pricing_type,
                product_kind=line.product_kind,
                unit_cost=line.unit_cost,
            )
        )


def save_cart(db: Session, lines: Sequence[CartLineIn]) -> bool:
    """Replace the stored cart with *lines*.

    A storage failure is logged and reported as ``False``; the cart stays
    usable in memory and the next edit tries again.
    """
    try:
        _write_cart(db, lines)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist cart (%d lines); will retry on next edit", len(lines))
        return False
    logger.debug("Saved %d items to cart store", len(lines))
    return True


def load_cart(db: Session) -> list[CartLine]:
    items = db.query(CartLine).order_by(CartLine.position).all()
    logger.debug("Retrieved %d items from cart store", len(items))
    return items


def clear_cart(db: Session) -> None:
    try:
        db.query(CartLine).delete()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Could not clear stored cart") from exc
    logger.info("Cart cleared from local store")


def restore_cart(db: Session, lines: Sequence[CartLineIn]) -> None:
    """Replace the stored cart from a backup. Unlike ``save_cart`` this raises."""
    try:
        _write_cart(db, lines)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Could not restore cart") from exc
    logger.info("Restored %d items to cart", len(lines))


# ─── Sync queue ──────────────────────────────────────────────────────────────


def enqueue_sale(db: Session, sale: Sale) -> OutboxEntry:
    """Queue *sale* for later delivery. Append-only; does not commit.

    The sale must already be flushed so its lines and payments are
    loaded into the snapshot.
    """
    existing = db.query(OutboxEntry).filter(OutboxEntry.sale_id == sale.id).first()
    if existing is not None:
        raise PersistenceError(f"Sale {sale.id} is already queued")
    entry = OutboxEntry(sale_id=sale.id, payload=sale_snapshot(sale))
    db.add(entry)
    db.flush()
    logger.info("Queued sale %s (outbox #%s)", sale.id, entry.sequence)
    return entry


def list_pending(db: Session) -> list[OutboxEntry]:
    """Entries not yet acknowledged, oldest first."""
    return (
        db.query(OutboxEntry)
        .filter(OutboxEntry.status.in_(_OPEN_STATES))
        .order_by(OutboxEntry.sequence)
        .all()
    )


def pending_count(db: Session) -> int:
    return db.query(OutboxEntry).filter(OutboxEntry.status.in_(_OPEN_STATES)).count()


def claim_lease_seconds() -> float:
    """How long a sweep's SYNCING claim holds before another sweep may reclaim it.

    Covers every attempt timing out plus every backoff wait in between.
    """
    attempts = settings.SYNC_MAX_ATTEMPTS
    return (
        settings.SYNC_TIMEOUT_SECONDS * attempts
        + settings.SYNC_BACKOFF_MAX_SECONDS * max(attempts - 1, 0)
    )


def recover_interrupted(db: Session, lease_seconds: float | None = None) -> int:
    """Put SYNCING entries whose claim has lapsed back to PENDING. Does not commit.

    An entry claimed more recently than the lease belongs to a sweep that
    may still be delivering it, so it is left alone.
    """
    lease = claim_lease_seconds() if lease_seconds is None else lease_seconds
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=lease)
    return (
        db.query(OutboxEntry)
        .filter(
            OutboxEntry.status == OutboxStatus.SYNCING,
            or_(OutboxEntry.last_attempt_at.is_(None), OutboxEntry.last_attempt_at < cutoff),
        )
        .update({OutboxEntry.status: OutboxStatus.PENDING}, synchronize_session="fetch")
    )


def _claim(db: Session, sequence: int) -> bool:
    """Move one entry PENDING → SYNCING. False if another sweep holds it or it is gone."""
    claimed = (
        db.query(OutboxEntry)
        .filter(OutboxEntry.sequence == sequence, OutboxEntry.status == OutboxStatus.PENDING)
        .update(
            {
                OutboxEntry.status: OutboxStatus.SYNCING,
                OutboxEntry.last_attempt_at: datetime.now(timezone.utc),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return claimed == 1


def _release(db: Session, sequence: int, attempts: int, values: dict[Any, Any]) -> bool:
    """Settle a claimed entry. False if the claim lapsed and another sweep took it."""
    released = (
        db.query(OutboxEntry)
        .filter(OutboxEntry.sequence == sequence, OutboxEntry.status == OutboxStatus.SYNCING)
        .update(
            {OutboxEntry.attempt_count: OutboxEntry.attempt_count + attempts, **values},
            synchronize_session=False,
        )
    )
    return released == 1


def purge_synced(db: Session) -> int:
    """Delete acknowledged entries. Does not commit."""
    return (
        db.query(OutboxEntry)
        .filter(OutboxEntry.status == OutboxStatus.SYNCED)
        .delete(synchronize_session="fetch")
    )


def export_outbox(db: Session) -> list[dict[str, Any]]:
    """Queued sale snapshots, oldest first, for backup."""
    return [entry.payload for entry in list_pending(db)]


def restore_outbox(db: Session, snapshots: Iterable[dict[str, Any]]) -> int:
    """Replace the queue with *snapshots* (from ``export_outbox``).

    Every snapshot is checked against the sale schema first; a malformed
    backup raises ``InvalidBackup`` and leaves the current queue untouched.
    """
    validated: list[dict[str, Any]] = []
    for position, snapshot in enumerate(snapshots):
        try:
            sale = SaleOut.model_validate(snapshot)
        except PydanticValidationError as exc:
            raise InvalidBackup(
                f"Backup entry {position} is not a valid sale snapshot: "
                f"{exc.error_count()} error(s)"
            ) from exc
        validated.append(sale.model_dump(mode="json"))

    count = 0
    try:
        db.query(OutboxEntry).delete()
        for snapshot in validated:
            db.add(OutboxEntry(sale_id=snapshot["id"], payload=snapshot))
            count += 1
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Could not restore outbox") from exc
    logger.info("Restored %d orders to queue", count)
    return count


# ─── Sync sweep ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SyncResult:
    success: int = 0
    failed: int = 0


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Exponential delay before retry number *attempt* (0-based)."""
    return min(base * (2 ** attempt), maximum)


def _deliver(
    client: LedgerClient,
    payload: dict[str, Any],
    *,
    max_attempts: int,
    backoff_base: float,
    backoff_max: float,
    cancel: threading.Event | None,
    sleep: Callable[[float], None],
) -> tuple[SyncError | None, int]:
    """Submit *payload*, retrying retryable failures. Returns (last error, attempts made)."""
    last_error: SyncError | None = None
    attempts = 0
    for attempt in range(max_attempts):
        attempts += 1
        try:
            client.submit_sale(payload)
            return None, attempts
        except SyncError as exc:
            last_error = exc
            if not exc.retryable or attempt == max_attempts - 1:
                break
            delay = backoff_delay(attempt, backoff_base, backoff_max)
            if cancel is not None:
                if cancel.wait(delay):
                    break
            else:
                sleep(delay)
    return last_error, attempts


def sync_pending_sales(
    db: Session,
    client: LedgerClient,
    *,
    connectivity: ConnectivityMonitor | None = None,
    cancel: threading.Event | None = None,
    max_attempts: int | None = None,
    backoff_base: float | None = None,
    backoff_max: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SyncResult:
    """Deliver queued sales to the ledger, oldest first, one at a time.

    Each entry is an independent delivery: success marks it SYNCED (and
    the sale ``synced``), failure puts it back to PENDING for the next
    sweep. Individual failures never raise. The sweep stops early, leaving
    the rest queued, when *cancel* is set or connectivity drops.

    Raises ``PersistenceError`` only if the local store is unusable.
    """
    max_attempts = max_attempts or settings.SYNC_MAX_ATTEMPTS
    backoff_base = settings.SYNC_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
    backoff_max = settings.SYNC_BACKOFF_MAX_SECONDS if backoff_max is None else backoff_max

    if connectivity is not None and not connectivity.is_online():
        logger.info("Sync attempt stopped: offline")
        return SyncResult()

    try:
        purge_synced(db)
        recovered = recover_interrupted(db)
        db.commit()
        sequences = [entry.sequence for entry in list_pending(db)]
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Outbox store unavailable") from exc

    if recovered:
        logger.warning("Recovered %d outbox entries from an interrupted sync", recovered)
    if not sequences:
        logger.info("No pending orders to sync")
        return SyncResult()

    logger.info("Found %d orders to sync", len(sequences))
    success = 0
    failed = 0
    try:
        for position, sequence in enumerate(sequences):
            if cancel is not None and cancel.is_set():
                logger.info("Sync cancelled; %d entries left queued", len(sequences) - position)
                break
            if connectivity is not None and not connectivity.is_online():
                logger.info("Went offline mid-sync; %d entries left queued", len(sequences) - position)
                break

            # Another sweep may be delivering it, or has already released it
            if not _claim(db, sequence):
                logger.debug("Outbox #%s is held by another sweep; skipping", sequence)
                continue
            entry = db.get(OutboxEntry, sequence)
            sale_id = entry.sale_id

            error, attempts = _deliver(
                client,
                entry.payload,
                max_attempts=max_attempts,
                backoff_base=backoff_base,
                backoff_max=backoff_max,
                cancel=cancel,
                sleep=sleep,
            )
            if error is None:
                released = _release(
                    db,
                    sequence,
                    attempts,
                    {
                        OutboxEntry.status: OutboxStatus.SYNCED,
                        OutboxEntry.synced_at: datetime.now(timezone.utc),
                        OutboxEntry.last_error: None,
                    },
                )
                sale = db.get(Sale, sale_id)
                if sale is not None:
                    sale.synced = True
                if released:
                    log_action(
                        db,
                        user_id=sale.cashier_id if sale is not None else None,
                        action="SALE_SYNCED",
                        resource_type="sales",
                        resource_id=sale_id,
                        changes={"attempts": attempts},
                    )
                else:
                    logger.warning("Claim on order %s lapsed during delivery", sale_id)
                db.commit()
                success += 1
                logger.info("Synced and released order %s", sale_id)
            else:
                _release(
                    db,
                    sequence,
                    attempts,
                    {OutboxEntry.status: OutboxStatus.PENDING, OutboxEntry.last_error: str(error)},
                )
                db.commit()
                failed += 1
                logger.warning("Failed to sync order %s: %s", sale_id, error)

        purge_synced(db)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Outbox store unavailable during sync") from exc

    logger.info("Sync finished. Success: %d, Failed: %d", success, failed)
    return SyncResult(success=success, failed=failed)
