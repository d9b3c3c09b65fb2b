"""MarketRepository: read-only view over markets and market_options.

All queries use raw text() SQL (no ORM). Option totals are maintained by
the market service; this repository never writes them.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.enums import MarketStatus
from src.pm_market.domain.models import Market, MarketOption, default_binary_options

_GET_MARKET_SQL = text("""
    SELECT id, title, description, status, ends_at, total_participants
    FROM markets
    WHERE id = :market_id
""")

_LIST_OPTIONS_SQL = text("""
    SELECT id, text, total_tokens, participant_count
    FROM market_options
    WHERE market_id = :market_id
    ORDER BY sort_order, id
""")


def _row_to_option(row: object) -> MarketOption:
    return MarketOption(
        id=row.id,  # type: ignore[attr-defined]
        text=row.text,  # type: ignore[attr-defined]
        total_tokens=int(row.total_tokens or 0),  # type: ignore[attr-defined]
        participant_count=int(row.participant_count or 0),  # type: ignore[attr-defined]
    )


def _row_to_market(row: object, options: list[MarketOption]) -> Market:
    return Market(
        id=row.id,  # type: ignore[attr-defined]
        title=row.title,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        status=MarketStatus(row.status),  # type: ignore[attr-defined]
        ends_at=row.ends_at,  # type: ignore[attr-defined]
        total_participants=int(row.total_participants or 0),  # type: ignore[attr-defined]
        options=options or default_binary_options(),
    )


class MarketRepository:
    async def get_market_by_id(
        self,
        db: AsyncSession,
        market_id: str,
    ) -> Market | None:
        result = await db.execute(_GET_MARKET_SQL, {"market_id": market_id})
        row = result.fetchone()
        if row is None:
            return None
        options_result = await db.execute(_LIST_OPTIONS_SQL, {"market_id": market_id})
        options = [_row_to_option(r) for r in options_result.fetchall()]
        return _row_to_market(row, options)
