"""Pure balance arithmetic.

Every transition returns a NEW UserBalance with version + 1 and a fresh
last_updated; callers persist it through a version-guarded write. Nothing
here touches storage.
"""

import math

from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import Position
from src.pm_common.errors import InsufficientBalanceError
from src.pm_common.tokens import round_half_up
from src.pm_ledger.domain.models import UserBalance


def empty_balance(user_id: str) -> UserBalance:
    """Seed for a user with no balance yet. Version 0 so the first earning event lands on 1."""
    return UserBalance(
        user_id=user_id,
        available_tokens=0,
        committed_tokens=0,
        total_earned=0,
        total_spent=0,
        version=0,
        last_updated=utc_now(),
    )


def total_balance(balance: UserBalance) -> float:
    return balance.available_tokens + balance.committed_tokens


def net_profit_loss(balance: UserBalance) -> float:
    return balance.total_earned - balance.total_spent


def has_sufficient_balance(balance: UserBalance | None, tokens: float) -> bool:
    return balance is not None and balance.available_tokens >= tokens


def after_commitment(balance: UserBalance, tokens: float) -> UserBalance:
    if balance.available_tokens < tokens:
        raise InsufficientBalanceError(required=tokens, available=balance.available_tokens)
    return balance.with_changes(
        available_tokens=balance.available_tokens - tokens,
        committed_tokens=balance.committed_tokens + tokens,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_purchase(balance: UserBalance, tokens: float, amount_spent_usd: float) -> UserBalance:
    return balance.with_changes(
        available_tokens=balance.available_tokens + tokens,
        total_spent=balance.total_spent + amount_spent_usd,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_grant(balance: UserBalance, tokens: float) -> UserBalance:
    """Free tokens (signup bonus): counted as earned, nothing spent."""
    return balance.with_changes(
        available_tokens=balance.available_tokens + tokens,
        total_earned=balance.total_earned + tokens,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_win(balance: UserBalance, tokens_committed: float, tokens_won: float) -> UserBalance:
    """Stake comes back on top of the winnings."""
    return balance.with_changes(
        available_tokens=balance.available_tokens + tokens_committed + tokens_won,
        committed_tokens=balance.committed_tokens - tokens_committed,
        total_earned=balance.total_earned + tokens_won,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_loss(balance: UserBalance, tokens_committed: float) -> UserBalance:
    return balance.with_changes(
        committed_tokens=balance.committed_tokens - tokens_committed,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_refund(balance: UserBalance, tokens: float) -> UserBalance:
    return balance.with_changes(
        available_tokens=balance.available_tokens + tokens,
        committed_tokens=balance.committed_tokens - tokens,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_purchase_reversal(
    balance: UserBalance, tokens: float, amount_spent_usd: float
) -> UserBalance:
    """Take purchased tokens back out; they must still be available."""
    if balance.available_tokens < tokens:
        raise InsufficientBalanceError(required=tokens, available=balance.available_tokens)
    return balance.with_changes(
        available_tokens=balance.available_tokens - tokens,
        total_spent=balance.total_spent - amount_spent_usd,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_win_reversal(balance: UserBalance, payout: float, tokens_won: float) -> UserBalance:
    """Claw back a payout; the stake stays lost."""
    if balance.available_tokens < payout:
        raise InsufficientBalanceError(required=payout, available=balance.available_tokens)
    return balance.with_changes(
        available_tokens=balance.available_tokens - payout,
        total_earned=balance.total_earned - tokens_won,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def after_loss_reversal(balance: UserBalance, tokens_committed: float) -> UserBalance:
    return balance.with_changes(
        available_tokens=balance.available_tokens + tokens_committed,
        version=balance.version + 1,
        last_updated=utc_now(),
    )


def calculate_odds(total_yes: float, total_no: float, position: Position | str) -> float:
    """Pool-share odds for a side: total pool / own side, floored at 1.0.

    An empty pool or an empty own side pays even odds (1.0).
    """
    total_pool = total_yes + total_no
    own = total_yes if Position(position) == Position.YES else total_no
    if total_pool <= 0 or own <= 0:
        return 1.0
    return max(1.0, total_pool / own)


def calculate_option_odds(option_tokens: float, pool_tokens: float) -> float:
    """Multi-option variant: one option against the rest of the pool."""
    return calculate_odds(option_tokens, pool_tokens - option_tokens, Position.YES)


def potential_winnings(tokens: float, odds: float) -> int:
    if not math.isfinite(odds) or odds <= 0:
        raise ValueError(f"odds must be a positive finite number, got {odds!r}")
    return round_half_up(tokens * odds)
