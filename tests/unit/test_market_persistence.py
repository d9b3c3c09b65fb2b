# tests/unit/test_market_persistence.py
"""Unit tests for MarketRepository using MagicMock AsyncSession."""
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.pm_common.enums import MarketStatus
from src.pm_market.infrastructure.persistence import MarketRepository


def _make_market_row(**kwargs):
    """Build a mock DB row with all required fields."""
    row = MagicMock()
    row.id = kwargs.get("id", "mkt-1")
    row.title = kwargs.get("title", "Will they stay together?")
    row.description = kwargs.get("description")
    row.status = kwargs.get("status", "active")
    row.ends_at = datetime(2030, 1, 1, tzinfo=UTC)
    row.total_participants = kwargs.get("total_participants", 8)
    return row


def _make_option_row(option_id: str, text: str, tokens: int | None = 0):
    row = MagicMock()
    row.id = option_id
    row.text = text
    row.total_tokens = tokens
    row.participant_count = None
    return row


def _result(row=None, rows=None):
    result = MagicMock()
    result.fetchone.return_value = row
    result.fetchall.return_value = rows or []
    return result


@pytest.fixture
def db():
    return MagicMock()


class TestGetMarketById:
    async def test_returns_market_with_options(self, db):
        db.execute = AsyncMock(side_effect=[
            _result(_make_market_row()),
            _result(rows=[_make_option_row("a", "Yes", 500), _make_option_row("b", "No", None)]),
        ])
        market = await MarketRepository().get_market_by_id(db, "mkt-1")
        assert market is not None
        assert market.status == MarketStatus.ACTIVE
        assert [o.id for o in market.options] == ["a", "b"]
        assert market.options[0].total_tokens == 500
        assert market.options[1].total_tokens == 0
        assert market.options[1].participant_count == 0
        assert market.total_participants == 8

    async def test_legacy_market_without_options_gets_yes_no(self, db):
        db.execute = AsyncMock(side_effect=[_result(_make_market_row()), _result(rows=[])])
        market = await MarketRepository().get_market_by_id(db, "mkt-1")
        assert [o.id for o in market.options] == ["yes", "no"]
        assert market.is_binary

    async def test_returns_none_when_missing(self, db):
        db.execute = AsyncMock(return_value=_result(None))
        assert await MarketRepository().get_market_by_id(db, "missing") is None
        db.execute.assert_awaited_once()
