"""Periodic cleanup tasks."""

from __future__ import annotations

from kenpos.app.workers.celery_app import celery


@celery.task(name="kenpos.app.workers.tasks.cleanup.cleanup_revoked_tokens")
def cleanup_revoked_tokens() -> dict:
    """Purge expired entries from the in-memory revoked-token set."""
    from kenpos.app.core.security import cleanup_expired_tokens

    removed = cleanup_expired_tokens()
    return {"removed": removed}
