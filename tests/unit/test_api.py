"""End-to-end HTTP tests over the in-memory store (no PostgreSQL or Redis)."""

from datetime import UTC, datetime, timedelta

import pytest

from src.pm_common.enums import MarketStatus
from src.pm_market.domain.models import Market, MarketOption


@pytest.fixture
def market(store) -> Market:
    m = Market(
        id="mkt-1",
        title="Will they stay together?",
        status=MarketStatus.ACTIVE,
        ends_at=datetime.now(UTC) + timedelta(days=14),
        options=[
            MarketOption(id="opt-yes", text="Stay together", total_tokens=500),
            MarketOption(id="opt-no", text="Break up", total_tokens=300),
        ],
    )
    store.add_market(m)
    return m


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestBalances:
    async def test_unknown_user_is_404_envelope(self, client):
        resp = await client.get("/api/v1/balances/nobody")
        assert resp.status_code == 404
        body = resp.json()
        assert body["code"] == 2002
        assert body["request_id"] == resp.headers["X-Request-ID"]

    async def test_signup_then_read(self, client):
        resp = await client.post("/api/v1/balances/user-1/signup-bonus")
        assert resp.status_code == 200
        assert resp.json()["data"]["available_tokens"] == 1000

        data = (await client.get("/api/v1/balances/user-1")).json()["data"]
        assert data["available_display"] == "1.0K"
        assert data["version"] == 1

    async def test_purchase_and_history(self, client):
        resp = await client.post(
            "/api/v1/balances/user-1/purchases",
            json={"tokens": 500, "amount_spent_usd": 4.99, "payment_reference": "pay_1"},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["transaction"]["type"] == "purchase"

        history = (await client.get("/api/v1/balances/user-1/transactions?type=purchase")).json()
        assert len(history["data"]["items"]) == 1
        assert history["data"]["has_more"] is False

    async def test_purchase_rejects_zero_tokens(self, client):
        resp = await client.post(
            "/api/v1/balances/user-1/purchases", json={"tokens": 0, "amount_spent_usd": 1}
        )
        assert resp.status_code == 422


class TestCommitments:
    async def test_create_and_settle(self, client, market):
        await client.post("/api/v1/balances/user-1/signup-bonus")
        resp = await client.post(
            "/api/v1/commitments",
            json={
                "user_id": "user-1",
                "prediction_id": "mkt-1",
                "position": "yes",
                "tokens_to_commit": 100,
                "client_info": {"source": "mobile"},
            },
        )
        assert resp.status_code == 200
        result = resp.json()["data"]
        assert result["success"] is True
        assert result["commitment"]["market_id"] == "mkt-1"
        assert result["commitment"]["odds_display"] == "1.60x"
        assert result["commitment"]["metadata"]["commitment_source"] == "mobile"

        settle = await client.post(
            f"/api/v1/commitments/{result['commitment_id']}/settle",
            json={"outcome": "won"},
        )
        assert settle.status_code == 200
        assert settle.json()["data"]["available_tokens"] == 1060

    async def test_failed_creation_still_200(self, client, market):
        resp = await client.post(
            "/api/v1/commitments/binary",
            json={"user_id": "user-1", "market_id": "mkt-1", "position": "no",
                  "tokens_to_commit": 10},
        )
        assert resp.status_code == 200
        result = resp.json()["data"]
        assert result["success"] is False
        assert result["error"]["code"] == "VALIDATION_FAILED"

    async def test_validate_endpoint(self, client, market):
        resp = await client.post(
            "/api/v1/commitments/validate",
            json={"user_id": "user-1", "market_id": "mkt-1", "option_id": "opt-no",
                  "tokens_to_commit": 2.5},
        )
        data = resp.json()["data"]
        assert data["is_valid"] is False
        codes = {e["code"] for e in data["errors"]}
        assert codes == {"INVALID_AMOUNT"}

    async def test_multi_option_route(self, client, market):
        await client.post("/api/v1/balances/user-1/signup-bonus")
        resp = await client.post(
            "/api/v1/commitments/multi-option",
            json={"user_id": "user-1", "market_id": "mkt-1", "option_id": "opt-no",
                  "tokens_to_commit": 30},
        )
        assert resp.json()["data"]["commitment"]["position"] == "no"

    async def test_settle_unknown_is_404(self, client):
        resp = await client.post("/api/v1/commitments/cmt_missing/settle",
                                 json={"outcome": "lost"})
        assert resp.status_code == 404
        assert resp.json()["code"] == 4002


class TestRollbacks:
    async def _commit(self, client) -> str:
        await client.post("/api/v1/balances/user-1/signup-bonus")
        resp = await client.post(
            "/api/v1/commitments/binary",
            json={"user_id": "user-1", "market_id": "mkt-1", "position": "yes",
                  "tokens_to_commit": 100},
        )
        return resp.json()["data"]["commitment_id"]

    async def test_eligibility_then_rollback(self, client, market):
        cid = await self._commit(client)
        eligibility = (
            await client.get(f"/api/v1/commitments/{cid}/rollback-eligibility")
        ).json()["data"]
        assert eligibility["can_rollback"] is True

        resp = await client.post(f"/api/v1/commitments/{cid}/rollback", json={})
        assert resp.status_code == 200
        assert resp.json()["data"]["commitment"]["status"] == "refunded"

        again = await client.post(f"/api/v1/commitments/{cid}/rollback", json={})
        assert again.status_code == 409
        assert again.json()["code"] == 4005

    async def test_market_rollback_and_history(self, client, market):
        await self._commit(client)
        resp = await client.post(
            "/api/v1/commitments/markets/mkt-1/rollback", json={"reason": "market_cancelled"}
        )
        report = resp.json()["data"]
        assert report["total_commitments"] == 1
        assert report["tokens_returned"] == 100

        history = (await client.get("/api/v1/commitments/users/user-1/rollbacks")).json()["data"]
        assert [i["type"] for i in history["items"]] == ["refund"]

    async def test_transaction_rollback(self, client, market, store):
        await self._commit(client)
        commit_tx = next(t for t in store.transactions if t.type.value == "commit")
        resp = await client.post(
            f"/api/v1/commitments/transactions/{commit_tx.id}/rollback", json={}
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["reversed_transaction_id"] == commit_tx.id
        assert data["transaction"]["type"] == "refund"
        assert data["balance"]["available_tokens"] == 1000

    async def test_unknown_transaction_is_404(self, client):
        resp = await client.post("/api/v1/commitments/transactions/txn_x/rollback", json={})
        assert resp.status_code == 404
        assert resp.json()["code"] == 2005


class TestAdmin:
    async def test_audit_fix_and_log(self, client, store):
        await client.post("/api/v1/balances/user-1/signup-bonus")
        stored = store.balances["user-1"]
        store.balances["user-1"] = stored.with_changes(available_tokens=5)

        audit = (await client.get("/api/v1/admin/reconciliation/users/user-1")).json()["data"]
        assert audit["is_consistent"] is False
        assert audit["inconsistencies"][0]["field"] == "available_tokens"

        fixed = (await client.post("/api/v1/admin/reconciliation/users/user-1/fix")).json()
        assert fixed["data"]["available_tokens"] == 1000

        log = (await client.get("/api/v1/admin/reconciliation/users/user-1/audit-log")).json()
        assert len(log["data"]) == 1
        assert log["data"][0]["previous"]["available_tokens"] == 5

    async def test_batch_with_empty_list(self, client):
        resp = await client.post("/api/v1/admin/reconciliation/batch", json={"user_ids": []})
        assert resp.json()["data"]["total_users_checked"] == 0

    async def test_health_report(self, client):
        await client.post("/api/v1/balances/user-1/signup-bonus")
        data = (await client.get("/api/v1/admin/reconciliation/health")).json()["data"]
        assert data["total_users"] == 1
        assert data["inconsistency_rate"] == 0.0
        assert data["inconsistency_rate_display"] == "0.0%"
        assert data["circulation_display"] == "1.0K"

    async def test_integrity_check(self, client):
        resp = await client.post(
            "/api/v1/admin/balances/integrity",
            json={"available_tokens": 1000, "committed_tokens": 500, "total_earned": 1200,
                  "total_spent": 800, "version": 1},
        )
        data = resp.json()["data"]
        assert data["is_valid"] is False
        assert data["violations"] == ["Total tokens (1500) exceed net earned tokens (400)"]


class TestMarketAndEvidence:
    async def test_market_validate(self, client):
        resp = await client.post(
            "/api/v1/markets/validate",
            json={
                "title": "Is this the best couple ever?",
                "description": "A totally subjective question that cannot resolve.",
                "end_date": (datetime.now(UTC) + timedelta(days=10)).isoformat(),
                "options": [{"text": "Yes"}, {"text": "No"}],
            },
        )
        data = resp.json()["data"]
        assert data["is_valid"] is False
        assert data["is_resolvable"] is False

    async def test_market_guidance(self, client):
        data = (await client.get("/api/v1/markets/validation-guidance")).json()["data"]
        assert data["tips"]

    async def test_evidence_file(self, client):
        resp = await client.post(
            "/api/v1/evidence/validate-file",
            json={"name": "a/b.exe", "mime_type": "application/x-msdownload", "size": 10},
        )
        data = resp.json()["data"]
        assert data["is_valid"] is False
        assert data["sanitized_filename"] == "a_b.exe"
