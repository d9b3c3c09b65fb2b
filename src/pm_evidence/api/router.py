"""pm_evidence REST endpoints.

POST /evidence/validate          one evidence item
POST /evidence/validate-list     several items, issues prefixed by index
POST /evidence/validate-file     upload metadata (name, MIME type, size)
"""

from fastapi import APIRouter, Request

from src.pm_common.response import ApiResponse, success_response
from src.pm_evidence.application.schemas import (
    EvidenceFileInput,
    EvidenceInput,
    EvidenceListRequest,
    EvidenceValidationResponse,
)
from src.pm_evidence.application.validation import EvidenceValidationService

router = APIRouter(prefix="/evidence", tags=["evidence"])

_service = EvidenceValidationService()


@router.post("/validate")
async def validate_evidence(body: EvidenceInput, request: Request) -> ApiResponse:
    result = _service.validate_evidence(body.to_domain())
    resp = success_response(EvidenceValidationResponse.from_domain(result).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/validate-list")
async def validate_evidence_list(body: EvidenceListRequest, request: Request) -> ApiResponse:
    result = _service.validate_evidence_list([item.to_domain() for item in body.items])
    data = result.to_dict()
    data["sanitized_contents"] = result.sanitized_contents
    resp = success_response(data)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/validate-file")
async def validate_file(body: EvidenceFileInput, request: Request) -> ApiResponse:
    result = _service.validate_file(body.to_domain())
    data = EvidenceValidationResponse.from_domain(result).model_dump()
    data["sanitized_filename"] = data.pop("sanitized_content")
    resp = success_response(data)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
