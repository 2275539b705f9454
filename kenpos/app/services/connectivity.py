"""Connectivity signal and its event channel.

The presentation layer (or a health probe) reports online/offline
transitions here. Subscribers are told about every transition; the sync
sweep subscribes to the offline→online edge.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from kenpos.app.services.ledger_client import LedgerClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectivityEvent:
    online: bool
    previous: bool
    at: datetime

    @property
    def came_online(self) -> bool:
        return self.online and not self.previous


Listener = Callable[[ConnectivityEvent], None]


class ConnectivityMonitor:
    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def set_online(self, online: bool) -> ConnectivityEvent | None:
        """Record the current state. Returns the event if it was a transition."""
        with self._lock:
            previous = self._online
            if previous == online:
                return None
            self._online = online
            listeners = list(self._listeners)

        event = ConnectivityEvent(online=online, previous=previous, at=datetime.now(timezone.utc))
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)
        return event

    def mark_offline(self) -> None:
        self.set_online(False)

    def mark_online(self) -> None:
        self.set_online(True)

    def probe(self, client: LedgerClient) -> bool:
        """Ask the ledger's health endpoint and record the answer."""
        online = client.health()
        self.set_online(online)
        return online
