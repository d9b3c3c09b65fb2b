"""pm_commitment REST endpoints.

POST /commitments                  create (option_id or position)
POST /commitments/validate         dry run, nothing written
POST /commitments/binary           YES/NO shortcut
POST /commitments/multi-option     explicit option_id shortcut
POST /commitments/{id}/settle      won / lost / refunded
POST /commitments/{id}/rollback    refund a young active commitment
GET  /commitments/{id}/rollback-eligibility
POST /commitments/markets/{market_id}/rollback            refund the whole market
POST /commitments/transactions/{transaction_id}/rollback  compensating ledger row
GET  /commitments/users/{user_id}/rollbacks

Creation endpoints always answer 200 with a CommitmentCreationResult;
`success` tells the caller whether the stake was taken.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_commitment.application.schemas import (
    BinaryCommitmentRequest,
    CommitmentCreateRequest,
    MultiOptionCommitmentRequest,
    RollbackRequest,
    SettleCommitmentRequest,
)
from src.pm_commitment.application.rollback import CommitmentRollbackService
from src.pm_commitment.application.service import CommitmentService
from src.pm_commitment.application.settlement import CommitmentSettlementService
from src.pm_common.database import get_db_session
from src.pm_common.response import ApiResponse, success_response

router = APIRouter(prefix="/commitments", tags=["commitments"])

_service = CommitmentService()
_settlement = CommitmentSettlementService()
_rollback = CommitmentRollbackService()


@router.post("")
async def create_commitment(
    body: CommitmentCreateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.create_commitment(db, body.to_domain())
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/validate")
async def validate_commitment(
    body: CommitmentCreateRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.validate_enhanced_commitment_request(db, body.to_domain())
    resp = success_response(result.to_dict())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/binary")
async def create_binary_commitment(
    body: BinaryCommitmentRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.create_binary_commitment(
        db,
        body.user_id,
        body.market_id,
        body.position,
        body.tokens_to_commit,
        client_info=body.client_info.to_domain(),
    )
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/multi-option")
async def create_multi_option_commitment(
    body: MultiOptionCommitmentRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.create_multi_option_commitment(
        db,
        body.user_id,
        body.market_id,
        body.option_id,
        body.tokens_to_commit,
        client_info=body.client_info.to_domain(),
    )
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{commitment_id}/settle")
async def settle_commitment(
    commitment_id: str,
    body: SettleCommitmentRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _settlement.settle_commitment(
        db, commitment_id, body.outcome, tokens_won=body.tokens_won, reason=body.reason
    )
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/{commitment_id}/rollback")
async def rollback_commitment(
    commitment_id: str,
    body: RollbackRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _rollback.rollback_commitment(db, commitment_id, reason=body.reason)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{commitment_id}/rollback-eligibility")
async def rollback_eligibility(
    commitment_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _rollback.can_rollback(db, commitment_id)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/markets/{market_id}/rollback")
async def rollback_market(
    market_id: str,
    body: RollbackRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _rollback.rollback_market_commitments(db, market_id, reason=body.reason)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/transactions/{transaction_id}/rollback")
async def rollback_transaction(
    transaction_id: str,
    body: RollbackRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _rollback.rollback_transaction(db, transaction_id, reason=body.reason)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/users/{user_id}/rollbacks")
async def rollback_history(
    user_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _rollback.get_rollback_history(db, user_id)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
