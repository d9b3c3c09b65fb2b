"""Recompute a balance from its ledger history.

Each completed transaction is replayed with the same effect the fast path
applied through balance_math:

  purchase  available += amount, spent += metadata.amount_spent_usd
            (signup_bonus grants credit earned instead)
  commit    available -= amount, committed += amount
  win       available += amount (stake + winnings), committed -= stake,
            earned += amount - stake
  loss      committed -= amount
  refund    available += amount, committed -= amount

Compensating rows carry `metadata.reversed_type`. Two of them do not follow
their own type's rule:

  refund reversing a purchase  available -= amount, spent -= amount_spent_usd
  loss reversing a win         available -= amount, earned -= amount - stake

The committed figure is then taken from the currently active commitments,
which are the authoritative record of what is at stake.
"""

import math
from collections.abc import Iterable

from src.pm_commitment.domain.models import PredictionCommitment
from src.pm_common.enums import TransactionStatus, TransactionType
from src.pm_ledger.domain.models import SIGNUP_BONUS_REASON, TokenTransaction, UserBalance
from src.pm_reconciliation.domain.models import BalanceInconsistency, CalculatedBalance

_COMPARED_FIELDS = ("available_tokens", "committed_tokens", "total_earned", "total_spent")


def recompute_balance(
    transactions: Iterable[TokenTransaction],
    active_commitments: Iterable[PredictionCommitment],
) -> CalculatedBalance:
    available = 0.0
    earned = 0.0
    spent = 0.0

    for tx in transactions:
        if tx.status != TransactionStatus.COMPLETED:
            continue
        meta = tx.metadata
        if tx.type == TransactionType.REFUND and meta.reversed_type == TransactionType.PURCHASE:
            available -= tx.amount
            spent -= meta.amount_spent_usd or 0.0
        elif tx.type == TransactionType.LOSS and meta.reversed_type == TransactionType.WIN:
            stake = meta.tokens_committed or 0
            available -= tx.amount
            earned -= tx.amount - stake
        elif tx.type == TransactionType.PURCHASE:
            available += tx.amount
            if meta.reason == SIGNUP_BONUS_REASON:
                earned += tx.amount
            spent += meta.amount_spent_usd or 0.0
        elif tx.type == TransactionType.COMMIT:
            available -= tx.amount
        elif tx.type == TransactionType.WIN:
            stake = meta.tokens_committed or 0
            available += tx.amount
            earned += tx.amount - stake
        elif tx.type == TransactionType.REFUND:
            available += tx.amount
        # LOSS only moves committed tokens, which come from active commitments below

    committed = float(sum(c.tokens_committed for c in active_commitments if c.is_active))
    return CalculatedBalance(
        available_tokens=max(0.0, available),
        committed_tokens=committed,
        total_earned=earned,
        total_spent=spent,
    )


def find_inconsistencies(
    stored: UserBalance | None,
    calculated: CalculatedBalance,
    tolerance: float,
) -> list[BalanceInconsistency]:
    """Field-by-field diff; a missing stored balance compares as all zeros."""
    found = []
    for name in _COMPARED_FIELDS:
        stored_value = float(getattr(stored, name)) if stored is not None else 0.0
        calculated_value = getattr(calculated, name)
        difference = calculated_value - stored_value
        if not math.isfinite(difference) or abs(difference) > tolerance:
            found.append(
                BalanceInconsistency(
                    field=name,
                    stored_value=stored_value,
                    calculated_value=calculated_value,
                    difference=difference,
                )
            )
    return found
