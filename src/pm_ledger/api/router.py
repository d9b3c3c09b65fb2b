"""pm_ledger REST endpoints.

GET  /balances/{user_id}                 current balance with display fields
GET  /balances/{user_id}/transactions    ledger history, newest first, cursor paginated
POST /balances/{user_id}/purchases       credit purchased tokens
POST /balances/{user_id}/signup-bonus    one-off welcome grant (idempotent)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.database import get_db_session
from src.pm_common.enums import TransactionType
from src.pm_common.response import ApiResponse, success_response
from src.pm_ledger.application.schemas import PurchaseRequest
from src.pm_ledger.application.service import TokenLedgerService

router = APIRouter(prefix="/balances", tags=["balances"])

_service = TokenLedgerService()


@router.get("/{user_id}")
async def get_balance(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.get_balance(db, user_id)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{user_id}/transactions")
async def list_transactions(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    tx_type: TransactionType | None = Query(None, alias="type"),
    limit: int = Query(20, ge=1, le=100),
    cursor: str | None = Query(None),
) -> ApiResponse:
    result = await _service.list_transactions(
        db, user_id, cursor, limit, tx_type.value if tx_type else None
    )
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{user_id}/purchases")
async def purchase_tokens(
    user_id: str,
    body: PurchaseRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.purchase_tokens(
        db,
        user_id,
        body.tokens,
        body.amount_spent_usd,
        package_id=body.package_id,
        payment_reference=body.payment_reference,
    )
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{user_id}/signup-bonus")
async def grant_signup_bonus(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.grant_signup_bonus(db, user_id)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
