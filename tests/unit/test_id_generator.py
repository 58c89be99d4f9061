"""Unit tests for id generation."""

import pytest

from src.core.id_generator import MonotonicIdGenerator, new_storage_unique_id


@pytest.mark.unit
class TestMonotonicIdGenerator:
    def test_uses_clock_milliseconds(self):
        generator = MonotonicIdGenerator(clock=lambda: 1_700_000_000.123)

        assert generator.next_id() == 1_700_000_000_123

    def test_same_millisecond_still_increases(self):
        generator = MonotonicIdGenerator(clock=lambda: 1.0)

        ids = [generator.next_id() for _ in range(5)]

        assert ids == [1000, 1001, 1002, 1003, 1004]

    def test_clock_going_backwards(self):
        times = iter([10.0, 5.0])
        generator = MonotonicIdGenerator(clock=lambda: next(times))

        first = generator.next_id()
        second = generator.next_id()

        assert second > first

    def test_skips_taken_ids(self):
        generator = MonotonicIdGenerator(clock=lambda: 1.0)

        assert generator.next_id(taken=[1000, 1001, 1003]) == 1002


@pytest.mark.unit
def test_storage_unique_ids_differ():
    ids = {new_storage_unique_id() for _ in range(100)}

    assert len(ids) == 100
