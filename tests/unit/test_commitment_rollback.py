"""Tests for CommitmentRollbackService over the in-memory store.

Every reversal is followed by a reconciliation audit: the compensating row
must replay to the same balance the fast path wrote.
"""

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from src.pm_commitment.application.rollback import (
    COMPENSATING_TYPE,
    CommitmentRollbackService,
    rollback_blocker,
)
from src.pm_commitment.application.service import CommitmentService
from src.pm_commitment.application.settlement import CommitmentSettlementService
from src.pm_commitment.domain.models import (
    CommitmentMetadata,
    OddsSnapshot,
    PredictionCommitment,
)
from src.pm_common.enums import (
    CommitmentStatus,
    MarketStatus,
    Position,
    SettlementOutcome,
    TransactionType,
)
from src.pm_common.errors import (
    CommitmentNotFoundError,
    InsufficientBalanceError,
    InvalidInputError,
    InvalidUserIdError,
    RollbackNotAllowedError,
    TransactionNotFoundError,
)
from src.pm_ledger.application.service import TokenLedgerService
from src.pm_ledger.infrastructure.memory import InMemoryLedgerStore
from src.pm_market.domain.models import Market, MarketOption
from src.pm_reconciliation.application.service import BalanceReconciliationService


def _market(market_id: str = "mkt-1") -> Market:
    return Market(
        id=market_id,
        title="Will they stay together?",
        status=MarketStatus.ACTIVE,
        ends_at=datetime.now(UTC) + timedelta(days=7),
        options=[
            MarketOption(id="opt-yes", text="Yes", total_tokens=500, participant_count=5),
            MarketOption(id="opt-no", text="No", total_tokens=300, participant_count=3),
        ],
        total_participants=8,
    )


@pytest.fixture
def store() -> InMemoryLedgerStore:
    s = InMemoryLedgerStore()
    s.add_market(_market())
    s.add_market(_market("mkt-2"))
    return s


@pytest.fixture
def ledger(store) -> TokenLedgerService:
    return TokenLedgerService(repo=store)


@pytest.fixture
def commitments(store) -> CommitmentService:
    return CommitmentService(ledger_repo=store, commitment_repo=store, market_repo=store)


@pytest.fixture
def settlement(store) -> CommitmentSettlementService:
    return CommitmentSettlementService(ledger_repo=store, commitment_repo=store)


@pytest.fixture
def rollback(store) -> CommitmentRollbackService:
    return CommitmentRollbackService(ledger_repo=store, commitment_repo=store)


async def _fund(store, ledger, user_id: str = "user-1") -> str:
    resp = await ledger.purchase_tokens(store.session(), user_id, 1000, 9.99)
    return resp.transaction.id


async def _commit(store, commitments, user_id: str = "user-1", market_id: str = "mkt-1") -> str:
    result = await commitments.create_binary_commitment(
        store.session(), user_id, market_id, Position.YES, 100
    )
    assert result.success
    return result.commitment_id


def _row(store, tx_type: TransactionType, related_id: str):
    return next(t for t in store.transactions if t.type == tx_type and t.related_id == related_id)


async def _assert_replays(store, user_id: str = "user-1") -> None:
    audit = await BalanceReconciliationService(
        ledger_repo=store, commitment_repo=store, audit_repo=store
    ).audit_user_balance(store.session(), user_id)
    assert audit.is_consistent, audit.inconsistencies


class TestCompensatingTypes:
    def test_every_type_has_a_compensation(self) -> None:
        assert set(COMPENSATING_TYPE) == set(TransactionType)
        assert COMPENSATING_TYPE[TransactionType.PURCHASE] == TransactionType.REFUND
        assert COMPENSATING_TYPE[TransactionType.WIN] == TransactionType.LOSS
        assert COMPENSATING_TYPE[TransactionType.REFUND] == TransactionType.COMMIT


class TestRollbackTransaction:
    async def test_purchase_reversal(self, store, ledger, rollback) -> None:
        purchase_id = await _fund(store, ledger)
        resp = await rollback.rollback_transaction(store.session(), purchase_id, "chargeback")
        assert resp.reversed_transaction_id == purchase_id
        assert resp.transaction.type == "refund"
        assert resp.transaction.metadata["reverses_transaction_id"] == purchase_id
        assert resp.transaction.metadata["reversed_type"] == "purchase"
        assert resp.transaction.metadata["reason"] == "chargeback"
        assert resp.balance.available_tokens == 0
        assert resp.balance.total_spent == pytest.approx(0)
        assert resp.balance.version == 2
        assert resp.commitment is None
        await _assert_replays(store)

    async def test_purchase_reversal_needs_tokens_still_available(
        self, store, ledger, commitments, rollback
    ) -> None:
        purchase_id = await _fund(store, ledger)
        await _commit(store, commitments)
        rows_before = len(store.transactions)
        with pytest.raises(InsufficientBalanceError):
            await rollback.rollback_transaction(store.session(), purchase_id)
        assert len(store.transactions) == rows_before
        assert store.balances["user-1"].available_tokens == 900

    async def test_commit_reversal_refunds_stake(
        self, store, ledger, commitments, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        commit_tx = _row(store, TransactionType.COMMIT, cid)
        resp = await rollback.rollback_transaction(store.session(), commit_tx.id)
        assert resp.transaction.type == "refund"
        assert resp.commitment.status == "refunded"
        assert resp.commitment.resolved_at is not None
        assert resp.balance.available_tokens == 1000
        assert resp.balance.committed_tokens == 0
        await _assert_replays(store)

    async def test_win_reversal_claws_back_payout(
        self, store, ledger, commitments, settlement, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        await settlement.settle_commitment(store.session(), cid, SettlementOutcome.WON)
        assert store.balances["user-1"].available_tokens == 1060

        win_tx = _row(store, TransactionType.WIN, cid)
        resp = await rollback.rollback_transaction(store.session(), win_tx.id)
        assert resp.transaction.type == "loss"
        assert resp.transaction.amount == 160
        assert resp.commitment.status == "lost"
        assert resp.balance.available_tokens == 900
        assert resp.balance.total_earned == 0
        await _assert_replays(store)

    async def test_loss_reversal_returns_stake(
        self, store, ledger, commitments, settlement, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        await settlement.settle_commitment(store.session(), cid, SettlementOutcome.LOST)

        loss_tx = _row(store, TransactionType.LOSS, cid)
        resp = await rollback.rollback_transaction(store.session(), loss_tx.id)
        assert resp.transaction.type == "refund"
        assert resp.commitment.status == "refunded"
        assert resp.balance.available_tokens == 1000
        await _assert_replays(store)

    async def test_refund_reversal_reopens_commitment(
        self, store, ledger, commitments, settlement, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        await settlement.refund_commitment(store.session(), cid)

        refund_tx = _row(store, TransactionType.REFUND, cid)
        resp = await rollback.rollback_transaction(store.session(), refund_tx.id)
        assert resp.transaction.type == "commit"
        assert resp.balance.available_tokens == 900
        assert resp.balance.committed_tokens == 100
        assert store.commitments[cid].status == CommitmentStatus.ACTIVE
        assert store.commitments[cid].resolved_at is None
        await _assert_replays(store)

    async def test_second_rollback_rejected(self, store, ledger, rollback) -> None:
        purchase_id = await _fund(store, ledger)
        first = await rollback.rollback_transaction(store.session(), purchase_id)
        with pytest.raises(RollbackNotAllowedError, match=first.transaction.id):
            await rollback.rollback_transaction(store.session(), purchase_id)
        assert len(store.transactions) == 2

    async def test_compensating_row_is_final(self, store, ledger, rollback) -> None:
        purchase_id = await _fund(store, ledger)
        first = await rollback.rollback_transaction(store.session(), purchase_id)
        with pytest.raises(RollbackNotAllowedError, match="itself a rollback"):
            await rollback.rollback_transaction(store.session(), first.transaction.id)

    async def test_signup_bonus_is_not_reversible(self, store, ledger, rollback) -> None:
        await ledger.grant_signup_bonus(store.session(), "user-2")
        bonus = store.transactions[-1]
        with pytest.raises(RollbackNotAllowedError) as exc_info:
            await rollback.rollback_transaction(store.session(), bonus.id)
        assert exc_info.value.code == 4005
        assert exc_info.value.http_status == 409

    async def test_stake_row_whose_commitment_moved_on(
        self, store, ledger, commitments, settlement, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        await settlement.settle_commitment(store.session(), cid, SettlementOutcome.LOST)
        commit_tx = _row(store, TransactionType.COMMIT, cid)
        with pytest.raises(RollbackNotAllowedError, match="is lost, expected active"):
            await rollback.rollback_transaction(store.session(), commit_tx.id)
        assert store.balances["user-1"].version == 3

    async def test_unknown_transaction(self, store, rollback) -> None:
        with pytest.raises(TransactionNotFoundError):
            await rollback.rollback_transaction(store.session(), "txn_missing")

    async def test_blank_id_rejected(self, store, rollback) -> None:
        with pytest.raises(InvalidInputError):
            await rollback.rollback_transaction(store.session(), "  ")


class TestCommitmentRollback:
    async def test_young_active_commitment_is_eligible(
        self, store, ledger, commitments, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        eligibility = await rollback.can_rollback(store.session(), cid)
        assert eligibility.can_rollback is True
        assert eligibility.reason is None
        assert eligibility.commitment.id == cid

    async def test_missing_commitment(self, store, rollback) -> None:
        eligibility = await rollback.can_rollback(store.session(), "cmt_missing")
        assert eligibility.can_rollback is False
        assert eligibility.reason == "Commitment not found"
        assert eligibility.commitment is None

    async def test_settled_commitment(
        self, store, ledger, commitments, settlement, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        await settlement.settle_commitment(store.session(), cid, SettlementOutcome.LOST)
        eligibility = await rollback.can_rollback(store.session(), cid)
        assert eligibility.can_rollback is False
        assert eligibility.reason == "Commitment is already lost"

    async def test_old_commitment_cannot_be_rolled_back(
        self, store, ledger, commitments, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        old = datetime.now(UTC) - timedelta(hours=25)
        store.commitments[cid] = replace(store.commitments[cid], committed_at=old)

        eligibility = await rollback.can_rollback(store.session(), cid)
        assert eligibility.reason == "Commitment is too old to roll back"
        with pytest.raises(RollbackNotAllowedError):
            await rollback.rollback_commitment(store.session(), cid)
        assert store.commitments[cid].status == CommitmentStatus.ACTIVE

    def test_age_limit_is_inclusive(self) -> None:
        now = datetime(2025, 6, 2, 12, 0, tzinfo=UTC)
        commitment = _fake_commitment(committed_at=now - timedelta(hours=24))
        assert rollback_blocker(commitment, now) is None
        commitment = _fake_commitment(committed_at=now - timedelta(hours=24, seconds=1))
        assert rollback_blocker(commitment, now) == "Commitment is too old to roll back"

    async def test_rollback_commitment_refunds(
        self, store, ledger, commitments, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        resp = await rollback.rollback_commitment(store.session(), cid, "commitment_failed")
        assert resp.commitment.status == "refunded"
        assert resp.available_tokens == 1000
        assert store.transactions[-1].metadata.reason == "commitment_failed"
        await _assert_replays(store)

    async def test_rollback_unknown_commitment(self, store, rollback) -> None:
        with pytest.raises(CommitmentNotFoundError):
            await rollback.rollback_commitment(store.session(), "cmt_missing")


class TestMarketRollback:
    async def test_refunds_every_active_commitment_on_the_market(
        self, store, ledger, commitments, rollback
    ) -> None:
        await _fund(store, ledger, "user-1")
        await _fund(store, ledger, "user-2")
        a = await _commit(store, commitments, "user-1")
        b = await _commit(store, commitments, "user-2")
        other = await _commit(store, commitments, "user-1", market_id="mkt-2")

        report = await rollback.rollback_market_commitments(store.session(), "mkt-1")
        assert report.total_commitments == 2
        assert sorted(r.commitment.id for r in report.refunded) == sorted([a, b])
        assert report.failures == []
        assert report.tokens_returned == 200
        assert store.commitments[other].status == CommitmentStatus.ACTIVE
        assert store.transactions[-1].metadata.reason == "market_cancelled"
        await _assert_replays(store, "user-1")
        await _assert_replays(store, "user-2")

    async def test_failure_is_recorded_and_the_rest_still_run(
        self, store, ledger, commitments, rollback
    ) -> None:
        await _fund(store, ledger, "user-1")
        await _fund(store, ledger, "user-2")
        a = await _commit(store, commitments, "user-1")
        b = await _commit(store, commitments, "user-2")
        del store.balances["user-2"]

        report = await rollback.rollback_market_commitments(store.session(), "mkt-1", "void")
        assert [r.commitment.id for r in report.refunded] == [a]
        assert [f.commitment_id for f in report.failures] == [b]
        assert "Balance not found" in report.failures[0].error
        assert store.commitments[b].status == CommitmentStatus.ACTIVE

    async def test_market_without_commitments(self, store, rollback) -> None:
        report = await rollback.rollback_market_commitments(store.session(), "mkt-2")
        assert report.total_commitments == 0
        assert report.tokens_returned == 0


class TestRollbackHistory:
    async def test_lists_refunds_and_compensating_rows(
        self, store, ledger, commitments, settlement, rollback
    ) -> None:
        await _fund(store, ledger)
        cid = await _commit(store, commitments)
        await settlement.settle_commitment(store.session(), cid, SettlementOutcome.WON)
        win_tx = _row(store, TransactionType.WIN, cid)
        await rollback.rollback_transaction(store.session(), win_tx.id)
        second = await _commit(store, commitments, market_id="mkt-2")
        await settlement.refund_commitment(store.session(), second)

        history = await rollback.get_rollback_history(store.session(), "user-1")
        assert [i.type for i in history.items] == ["refund", "loss"]
        assert history.items[1].metadata["reverses_transaction_id"] == win_tx.id

    async def test_blank_user_rejected(self, store, rollback) -> None:
        with pytest.raises(InvalidUserIdError):
            await rollback.get_rollback_history(store.session(), "")


def _fake_commitment(committed_at: datetime) -> PredictionCommitment:
    return PredictionCommitment(
        id="cmt_1",
        user_id="user-1",
        market_id="mkt-1",
        option_id="opt-yes",
        position=Position.YES,
        tokens_committed=100,
        odds=1.6,
        potential_winning=160,
        status=CommitmentStatus.ACTIVE,
        committed_at=committed_at,
        metadata=CommitmentMetadata(
            market_status="active",
            market_title="Will they stay together?",
            market_ends_at=None,
            odds_snapshot=OddsSnapshot(
                yes_odds=1.6, no_odds=2.67,
                total_yes_tokens=500, total_no_tokens=300, total_participants=8,
            ),
            user_balance_at_commitment=1000.0,
        ),
    )
