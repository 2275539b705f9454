"""Outbox sync sweep, run off the request thread."""

from __future__ import annotations

from kenpos.app.services.connectivity import ConnectivityEvent
from kenpos.app.workers.celery_app import celery


@celery.task(name="kenpos.app.workers.tasks.sync.sync_outbox")
def sync_outbox() -> dict:
    """Deliver queued sales to the remote ledger in creation order."""
    from kenpos.app.core.database import SessionLocal
    from kenpos.app.services.ledger_client import LedgerClient
    from kenpos.app.services.outbox import sync_pending_sales

    db = SessionLocal()
    try:
        with LedgerClient.from_settings() as client:
            result = sync_pending_sales(db, client)
        return {"success": result.success, "failed": result.failed}
    finally:
        db.close()


def schedule_on_reconnect(event: ConnectivityEvent) -> None:
    """Connectivity listener: queue a sweep on every offline→online edge."""
    if event.came_online:
        sync_outbox.delay()
