"""Domain models for pm_market: pure dataclasses, no business logic.

Markets are owned by another service; this one only reads them.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.pm_common.enums import MarketStatus

# Options presented for legacy markets stored without any option rows.
DEFAULT_YES_OPTION_ID = "yes"
DEFAULT_NO_OPTION_ID = "no"


@dataclass
class MarketOption:
    id: str
    text: str
    total_tokens: int = 0
    participant_count: int = 0


@dataclass
class Market:
    id: str
    title: str
    status: MarketStatus
    ends_at: datetime | None
    options: list[MarketOption] = field(default_factory=list)
    total_participants: int = 0
    description: str | None = None

    @property
    def is_binary(self) -> bool:
        return len(self.options) <= 2

    @property
    def total_tokens(self) -> int:
        return sum(o.total_tokens for o in self.options)

    def option_by_id(self, option_id: str) -> tuple[int, MarketOption] | None:
        for index, option in enumerate(self.options):
            if option.id == option_id:
                return index, option
        return None


def default_binary_options() -> list[MarketOption]:
    return [
        MarketOption(id=DEFAULT_YES_OPTION_ID, text="Yes"),
        MarketOption(id=DEFAULT_NO_OPTION_ID, text="No"),
    ]
