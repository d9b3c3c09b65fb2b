"""Shared test fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient

from config.settings import settings
from src.main import app
from src.pm_commitment.api import router as commitment_api
from src.pm_commitment.application.rollback import CommitmentRollbackService
from src.pm_commitment.application.service import CommitmentService
from src.pm_commitment.application.settlement import CommitmentSettlementService
from src.pm_common.database import get_db_session
from src.pm_ledger.api import router as ledger_api
from src.pm_ledger.application.service import TokenLedgerService
from src.pm_ledger.infrastructure.memory import InMemoryLedgerStore
from src.pm_reconciliation.api import router as reconciliation_api
from src.pm_reconciliation.application.service import BalanceReconciliationService


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
async def client(store, monkeypatch) -> AsyncClient:
    """Async HTTP client over the real app, backed by the in-memory store."""

    async def _session():
        session = store.session()
        try:
            yield session
        finally:
            await session.close()

    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    monkeypatch.setattr(ledger_api, "_service", TokenLedgerService(repo=store))
    monkeypatch.setattr(
        commitment_api,
        "_service",
        CommitmentService(ledger_repo=store, commitment_repo=store, market_repo=store),
    )
    monkeypatch.setattr(
        commitment_api,
        "_settlement",
        CommitmentSettlementService(ledger_repo=store, commitment_repo=store),
    )
    monkeypatch.setattr(
        commitment_api,
        "_rollback",
        CommitmentRollbackService(ledger_repo=store, commitment_repo=store),
    )
    monkeypatch.setattr(
        reconciliation_api,
        "_service",
        BalanceReconciliationService(ledger_repo=store, commitment_repo=store, audit_repo=store),
    )
    app.dependency_overrides[get_db_session] = _session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
