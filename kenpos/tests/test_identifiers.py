"""Tests for sale and shift identifier generation."""
from __future__ import annotations

import threading

from kenpos.app.core.identifiers import MonotonicMillis, new_sale_id, new_shift_id


class _Clock:
    def __init__(self, *readings: float) -> None:
        self.readings = list(readings)

    def __call__(self) -> float:
        return self.readings.pop(0) if len(self.readings) > 1 else self.readings[0]


class TestMonotonicMillis:
    def test_follows_the_clock(self) -> None:
        gen = MonotonicMillis(_Clock(1.000, 1.250))
        assert gen.next() == 1000
        assert gen.next() == 1250

    def test_same_millisecond_still_increases(self) -> None:
        gen = MonotonicMillis(_Clock(1.0))
        assert [gen.next() for _ in range(3)] == [1000, 1001, 1002]

    def test_clock_stepping_back_still_increases(self) -> None:
        gen = MonotonicMillis(_Clock(5.0, 4.0, 6.0))
        assert [gen.next() for _ in range(3)] == [5000, 5001, 6000]

    def test_unique_across_threads(self) -> None:
        gen = MonotonicMillis(_Clock(42.0))
        issued: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            values = [gen.next() for _ in range(200)]
            with lock:
                issued.extend(values)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(issued)) == 1600


class TestFormats:
    def test_sale_id(self) -> None:
        sale_id = new_sale_id("INV-")
        assert sale_id.startswith("INV-")
        assert sale_id[4:].isdigit()

    def test_shift_id(self) -> None:
        shift_id = new_shift_id()
        assert shift_id.startswith("shift_")
        assert shift_id[6:].isdigit()

    def test_ids_share_one_sequence(self) -> None:
        a = int(new_sale_id("X")[1:])
        b = int(new_shift_id()[6:])
        c = int(new_sale_id("X")[1:])
        assert a < b < c
