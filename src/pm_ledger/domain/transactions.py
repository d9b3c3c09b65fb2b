"""Construction of ledger rows from a before/after balance pair."""

from src.pm_common.datetime_utils import utc_now
from src.pm_common.enums import TransactionStatus, TransactionType
from src.pm_common.id_generator import new_transaction_id
from src.pm_ledger.domain.models import TokenTransaction, TransactionMetadata, UserBalance


def record_transaction(
    tx_type: TransactionType,
    amount: float,
    before: UserBalance,
    after: UserBalance,
    related_id: str | None = None,
    metadata: TransactionMetadata | None = None,
) -> TokenTransaction:
    """Completed transaction with available-token snapshots taken from the two balances."""
    return TokenTransaction(
        id=new_transaction_id(),
        user_id=after.user_id,
        type=tx_type,
        amount=amount,
        balance_before=before.available_tokens,
        balance_after=after.available_tokens,
        timestamp=utc_now(),
        status=TransactionStatus.COMPLETED,
        related_id=related_id,
        metadata=metadata or TransactionMetadata(),
    )
