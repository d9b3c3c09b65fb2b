"""Admin reconciliation endpoints.

GET  /admin/reconciliation/users/{user_id}            audit (read-only)
POST /admin/reconciliation/users/{user_id}/fix        overwrite stored balance from ledger
GET  /admin/reconciliation/users/{user_id}/snapshot   audit + integrity in one document
GET  /admin/reconciliation/users/{user_id}/audit-log  past corrections
POST /admin/reconciliation/batch                      audit + fix a list of users
POST /admin/reconciliation/all                        audit + fix every user
GET  /admin/reconciliation/health                     totals + sampled drift rate
POST /admin/balances/integrity                        check a raw balance record
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.database import get_db_session
from src.pm_common.response import ApiResponse, success_response
from src.pm_ledger.application.schemas import BalanceResponse
from src.pm_reconciliation.application.schemas import (
    AuditLogItem,
    AuditResponse,
    BalanceIntegrityRequest,
    HealthReportResponse,
    IntegrityResponse,
    ReconcileUsersRequest,
    ReconciliationReportResponse,
)
from src.pm_reconciliation.application.service import BalanceReconciliationService
from src.pm_reconciliation.domain.integrity import validate_balance_integrity

router = APIRouter(prefix="/admin", tags=["admin"])

_service = BalanceReconciliationService()


def _respond(request: Request, data: object) -> ApiResponse:
    resp = success_response(data)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/reconciliation/users/{user_id}")
async def audit_user(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    audit = await _service.audit_user_balance(db, user_id)
    return _respond(request, AuditResponse.from_domain(audit).model_dump())


@router.post("/reconciliation/users/{user_id}/fix")
async def fix_user(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    balance = await _service.fix_user_balance(db, user_id)
    return _respond(request, BalanceResponse.from_domain(balance).model_dump())


@router.get("/reconciliation/users/{user_id}/snapshot")
async def balance_snapshot(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    snapshot = await _service.create_balance_snapshot(db, user_id)
    return _respond(request, snapshot.model_dump())


@router.get("/reconciliation/users/{user_id}/audit-log")
async def audit_log(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    limit: int = Query(20, ge=1, le=100),
) -> ApiResponse:
    entries = await _service.list_audit_log(db, user_id, limit)
    return _respond(request, [AuditLogItem.from_domain(e).model_dump() for e in entries])


@router.post("/reconciliation/batch")
async def reconcile_batch(
    body: ReconcileUsersRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    report = await _service.reconcile_multiple_users(db, body.user_ids)
    return _respond(request, ReconciliationReportResponse.from_domain(report).model_dump())


@router.post("/reconciliation/all")
async def reconcile_all(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    report = await _service.reconcile_all_users(db)
    return _respond(request, ReconciliationReportResponse.from_domain(report).model_dump())


@router.get("/reconciliation/health")
async def health_report(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    report = await _service.generate_health_report(db)
    return _respond(request, HealthReportResponse.from_domain(report).model_dump())


@router.post("/balances/integrity")
async def check_integrity(body: BalanceIntegrityRequest, request: Request) -> ApiResponse:
    report = validate_balance_integrity(body.model_dump())
    return _respond(request, IntegrityResponse.from_domain(report).model_dump())
