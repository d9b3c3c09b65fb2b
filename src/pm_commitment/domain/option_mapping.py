"""Map between option_id (source of truth) and the legacy yes/no position.

Rules:
  - first option <-> "yes", any other option <-> "no"
  - binary markets: position alone picks options[0] / options[1]
  - multi-option markets: position alone is accepted only when exactly one
    option reads unambiguously as that side; otherwise it is rejected
"""

import re
from dataclasses import dataclass

from src.pm_common.enums import Position
from src.pm_common.errors import OptionNotFoundError
from src.pm_common.validation import ValidationResult
from src.pm_market.domain.models import Market, MarketOption

YES_KEYWORDS = frozenset({"yes", "stay", "together", "will", "true", "positive"})
NO_KEYWORDS = frozenset({"no", "break", "up", "wont", "won't", "false", "negative"})

_WORD_RE = re.compile(r"[a-z']+")


@dataclass(frozen=True)
class ResolvedTarget:
    option: MarketOption
    option_index: int
    position: Position


def position_for_index(index: int) -> Position:
    return Position.YES if index == 0 else Position.NO


def locate_option(market: Market, option_id: str) -> tuple[int, MarketOption]:
    """Index and option for `option_id`; the index decides the legacy position."""
    found = market.option_by_id(option_id)
    if found is None:
        raise OptionNotFoundError(option_id)
    return found


def position_to_option_id(market: Market, position: Position) -> str:
    """Binary mapping; single-option markets map both sides onto the only option."""
    if not market.options:
        raise ValueError(f"Market {market.id} has no options")
    if position == Position.YES or len(market.options) == 1:
        return market.options[0].id
    return market.options[1].id


def _side_of(text: str) -> Position | None:
    words = set(_WORD_RE.findall(text.lower()))
    is_yes = bool(words & YES_KEYWORDS)
    is_no = bool(words & NO_KEYWORDS)
    if is_yes and not is_no:
        return Position.YES
    if is_no and not is_yes:
        return Position.NO
    return None


def _match_by_keywords(market: Market, position: Position) -> list[int]:
    return [i for i, o in enumerate(market.options) if _side_of(o.text) == position]


def resolve_target(
    market: Market,
    option_id: str | None,
    position: Position | None,
    result: ValidationResult,
) -> ResolvedTarget | None:
    """Resolve the targeted option, appending problems to `result`.

    Returns None when the target cannot be determined.
    """
    if option_id:
        try:
            index, option = locate_option(market, option_id)
        except OptionNotFoundError as exc:
            result.error("option_id", "OPTION_NOT_FOUND", exc.message)
            return None
        derived = position_for_index(index)
        if position is not None and position != derived:
            if market.is_binary:
                result.error(
                    "position",
                    "POSITION_MISMATCH",
                    f"Position '{position.value}' does not match option '{option.text}'",
                )
                return None
            result.warn(
                "position",
                "POSITION_IGNORED",
                f"Position '{position.value}' ignored; option '{option.text}' is targeted",
            )
        return ResolvedTarget(option=option, option_index=index, position=derived)

    if position is None:
        result.error(
            "option_id", "TARGET_REQUIRED", "Either optionId or position must be specified"
        )
        return None

    if market.is_binary:
        target_id = position_to_option_id(market, position)
        index, option = locate_option(market, target_id)
        return ResolvedTarget(option=option, option_index=index, position=position)

    matches = _match_by_keywords(market, position)
    if len(matches) != 1 or position_for_index(matches[0]) != position:
        result.error(
            "option_id",
            "AMBIGUOUS_POSITION",
            f"Position '{position.value}' is ambiguous for a market with "
            f"{len(market.options)} options; specify optionId",
        )
        return None
    index = matches[0]
    option = market.options[index]
    result.warn(
        "position",
        "POSITION_MAPPED",
        f"Position '{position.value}' mapped to option '{option.text}'",
    )
    return ResolvedTarget(option=option, option_index=index, position=position)
