"""pm_market REST endpoints.

POST /markets/validate           full market-creation check
POST /markets/validate-field     single field, for live form feedback
GET  /markets/validation-guidance  examples and tips
"""

from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import TypeAdapter, ValidationError

from src.pm_common.errors import InvalidInputError
from src.pm_common.response import ApiResponse, success_response
from src.pm_market.application.schemas import (
    FieldValidationRequest,
    MarketOptionInput,
    MarketValidationRequest,
    MarketValidationResponse,
)
from src.pm_market.application.validation import CRITICAL_ERROR_CODES, MarketValidationService

router = APIRouter(prefix="/markets", tags=["markets"])

_service = MarketValidationService()

_FIELD_TYPES: dict[str, TypeAdapter] = {
    "title": TypeAdapter(str | None),
    "description": TypeAdapter(str | None),
    "end_date": TypeAdapter(datetime | None),
    "options": TypeAdapter(list[MarketOptionInput] | None),
}


@router.post("/validate")
async def validate_market(body: MarketValidationRequest, request: Request) -> ApiResponse:
    result = _service.validate_market(body.title, body.description, body.end_date, body.options)
    resolvable = not any(e.code in CRITICAL_ERROR_CODES for e in result.errors)
    data = MarketValidationResponse.from_result(result, resolvable)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/validate-field")
async def validate_field(body: FieldValidationRequest, request: Request) -> ApiResponse:
    try:
        value = _FIELD_TYPES[body.field].validate_python(body.value)
    except ValidationError as exc:
        raise InvalidInputError(f"{body.field}: {exc.errors()[0]['msg']}") from exc
    result = _service.validate_field(body.field, value)
    resp = success_response(result.to_dict())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/validation-guidance")
async def validation_guidance(request: Request) -> ApiResponse:
    resp = success_response(_service.validation_guidance())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
