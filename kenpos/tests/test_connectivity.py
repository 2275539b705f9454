"""Tests for the connectivity signal and the reconnect trigger."""
from __future__ import annotations

import httpx
import pytest

from kenpos.app.services.connectivity import ConnectivityEvent, ConnectivityMonitor
from kenpos.app.services.ledger_client import LedgerClient
from kenpos.app.workers.tasks import sync as sync_tasks
from kenpos.tests.conftest import LEDGER_URL, FakeLedger


class TestMonitor:
    def test_transitions_are_published(self) -> None:
        monitor = ConnectivityMonitor(online=True)
        events: list[ConnectivityEvent] = []
        monitor.subscribe(events.append)

        monitor.mark_offline()
        monitor.mark_offline()
        monitor.mark_online()

        assert [(e.previous, e.online) for e in events] == [(True, False), (False, True)]
        assert [e.came_online for e in events] == [False, True]

    def test_no_event_without_change(self) -> None:
        monitor = ConnectivityMonitor(online=False)
        assert monitor.set_online(False) is None
        assert monitor.is_online() is False

    def test_unsubscribe(self) -> None:
        monitor = ConnectivityMonitor()
        events: list[ConnectivityEvent] = []
        unsubscribe = monitor.subscribe(events.append)
        unsubscribe()
        monitor.mark_offline()
        assert events == []

    def test_failing_listener_does_not_stop_others(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        monitor = ConnectivityMonitor(online=False)
        seen: list[bool] = []

        def broken(event: ConnectivityEvent) -> None:
            raise RuntimeError("listener bug")

        monitor.subscribe(broken)
        monitor.subscribe(lambda e: seen.append(e.online))

        event = monitor.set_online(True)
        assert event is not None and event.came_online
        assert seen == [True]
        assert monitor.is_online() is True
        assert "listener" in caplog.text

    def test_probe_uses_ledger_health(self, fake_ledger: FakeLedger) -> None:
        monitor = ConnectivityMonitor(online=True)
        with LedgerClient(LEDGER_URL, transport=httpx.MockTransport(fake_ledger)) as client:
            fake_ledger.healthy = False
            assert monitor.probe(client) is False
            assert monitor.is_online() is False

            fake_ledger.healthy = True
            assert monitor.probe(client) is True
            assert monitor.is_online() is True


class _StubTask:
    def __init__(self) -> None:
        self.calls = 0

    def delay(self) -> None:
        self.calls += 1


class TestReconnectTrigger:
    def test_sweep_scheduled_only_when_coming_online(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        stub = _StubTask()
        monkeypatch.setattr(sync_tasks, "sync_outbox", stub)
        monitor = ConnectivityMonitor(online=True)
        monitor.subscribe(sync_tasks.schedule_on_reconnect)

        monitor.mark_offline()
        assert stub.calls == 0
        monitor.mark_online()
        assert stub.calls == 1
        monitor.mark_online()
        assert stub.calls == 1
