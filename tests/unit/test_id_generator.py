"""Tests for pm_common.id_generator and pm_common.datetime_utils."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from src.pm_common.datetime_utils import ensure_utc, parse_iso, utc_now
from src.pm_common.id_generator import (
    SnowflakeIdGenerator,
    new_commitment_id,
    new_transaction_id,
)


class TestSnowflakeIdGenerator:
    def test_unique_ids(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        ids = {gen.next_id() for _ in range(1000)}
        assert len(ids) == 1000

    def test_monotonically_increasing(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=1)
        prev = gen.next_int()
        for _ in range(100):
            current = gen.next_int()
            assert current > prev
            prev = current

    def test_prefix(self) -> None:
        gen = SnowflakeIdGenerator(machine_id=2)
        assert gen.next_id("adj").startswith("adj_")

    def test_machine_id_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            SnowflakeIdGenerator(machine_id=1024)

    def test_domain_prefixes(self) -> None:
        assert new_commitment_id().startswith("cmt_")
        assert new_transaction_id().startswith("txn_")


class TestDatetimeUtils:
    def test_utc_now_is_aware_utc(self) -> None:
        now = utc_now()
        assert isinstance(now, datetime)
        assert now.tzinfo == UTC

    def test_ensure_utc_naive(self) -> None:
        naive = datetime(2025, 1, 1, 12, 0)
        assert ensure_utc(naive).tzinfo == timezone.utc

    def test_ensure_utc_converts_offset(self) -> None:
        plus_two = datetime(2025, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(plus_two).hour == 10

    def test_parse_iso(self) -> None:
        assert parse_iso(None) is None
        assert parse_iso("2025-01-01T00:00:00+00:00") == datetime(2025, 1, 1, tzinfo=UTC)
