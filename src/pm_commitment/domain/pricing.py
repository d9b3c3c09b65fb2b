"""Odds for a targeted option and the pool snapshot stored with a commitment."""

from src.pm_commitment.domain.models import OddsSnapshot
from src.pm_commitment.domain.option_mapping import ResolvedTarget
from src.pm_common.enums import Position
from src.pm_ledger.domain.balance_math import calculate_odds, calculate_option_odds
from src.pm_market.domain.models import Market


def _binary_totals(market: Market) -> tuple[int, int]:
    yes = market.options[0].total_tokens if market.options else 0
    no = market.options[1].total_tokens if len(market.options) > 1 else 0
    return yes, no


def odds_for_target(market: Market, target: ResolvedTarget) -> float:
    if market.is_binary:
        total_yes, total_no = _binary_totals(market)
        return calculate_odds(total_yes, total_no, target.position)
    return calculate_option_odds(target.option.total_tokens, market.total_tokens)


def build_odds_snapshot(market: Market) -> OddsSnapshot:
    total_yes, total_no = _binary_totals(market)
    participants = market.total_participants or sum(
        o.participant_count for o in market.options
    )
    snapshot = OddsSnapshot(
        yes_odds=calculate_odds(total_yes, total_no, Position.YES),
        no_odds=calculate_odds(total_yes, total_no, Position.NO),
        total_yes_tokens=total_yes,
        total_no_tokens=total_no,
        total_participants=participants,
    )
    if not market.is_binary:
        pool = market.total_tokens
        snapshot.option_odds = {
            o.id: calculate_option_odds(o.total_tokens, pool) for o in market.options
        }
        snapshot.option_tokens = {o.id: o.total_tokens for o in market.options}
        snapshot.option_participants = {o.id: o.participant_count for o in market.options}
    return snapshot
