"""Tests for the ExpectedVersion predicate and the FixedClock test double."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from stream_core.domain.clock import FixedClock, SystemClock
from stream_core.domain.errors import ConcurrencyError
from stream_core.domain.versions import ExpectedVersion


class TestExpectedVersion:

    def test_sentinels(self) -> None:
        assert ExpectedVersion.NONE.value == -1
        assert ExpectedVersion.ANY.value == -2
        assert ExpectedVersion.NONE.is_none
        assert ExpectedVersion.ANY.is_any
        assert not ExpectedVersion.exactly(0).is_none

    def test_exactly_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            ExpectedVersion.exactly(-1)

    def test_below_any_rejected(self) -> None:
        with pytest.raises(ValueError):
            ExpectedVersion(-3)

    @pytest.mark.parametrize("current", [0, 1, 99])
    def test_any_always_passes(self, current: int) -> None:
        ExpectedVersion.ANY.check("s", current)

    def test_none_passes_only_for_missing_stream(self) -> None:
        ExpectedVersion.NONE.check("s", 0)
        with pytest.raises(ConcurrencyError) as exc_info:
            ExpectedVersion.NONE.check("s", 3)
        assert exc_info.value.expected_version == -1
        assert exc_info.value.actual_version == 3

    def test_exact_match(self) -> None:
        ExpectedVersion.exactly(4).check("s", 4)
        with pytest.raises(ConcurrencyError) as exc_info:
            ExpectedVersion.exactly(4).check("s", 5)
        assert exc_info.value.stream_id == "s"
        assert "expected version 4 but was 5" in str(exc_info.value)

    def test_exactly_zero_on_missing_stream(self) -> None:
        ExpectedVersion.exactly(0).check("s", 0)

    def test_value_semantics(self) -> None:
        assert ExpectedVersion.exactly(2) == ExpectedVersion.exactly(2)
        assert ExpectedVersion(-1) == ExpectedVersion.NONE
        assert repr(ExpectedVersion.ANY) == "ExpectedVersion.ANY"
        assert repr(ExpectedVersion.exactly(3)) == "ExpectedVersion.exactly(3)"


class TestClocks:

    def test_system_clock_is_utc(self) -> None:
        assert SystemClock().now().utcoffset() == timedelta(0)

    def test_fixed_clock_moves_only_when_told(self) -> None:
        start = datetime(2025, 3, 1, tzinfo=timezone.utc)
        clock = FixedClock(start)
        assert clock.now() == start
        assert clock.now() == start

        clock.advance(timedelta(minutes=5))
        assert clock.now() == start + timedelta(minutes=5)

        later = datetime(2026, 1, 1, tzinfo=timezone.utc)
        clock.set(later)
        assert clock.now() == later

    def test_fixed_clock_rejects_naive_times(self) -> None:
        with pytest.raises(ValueError):
            FixedClock(datetime(2025, 1, 1))
        with pytest.raises(ValueError):
            FixedClock().set(datetime(2025, 1, 1))
