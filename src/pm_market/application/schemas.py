"""Pydantic schemas for the market-creation validation API.

Request fields are optional on purpose: a missing title or end date is a
collected validation issue (TITLE_REQUIRED, END_DATE_REQUIRED), not a 422.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from src.pm_common.validation import ValidationResult


class MarketOptionInput(BaseModel):
    text: str = ""


class MarketValidationRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    end_date: datetime | None = None
    options: list[MarketOptionInput] | None = None


class FieldValidationRequest(BaseModel):
    field: Literal["title", "description", "end_date", "options"]
    value: Any = None


class IssueOut(BaseModel):
    field: str
    code: str
    message: str


class MarketValidationResponse(BaseModel):
    is_valid: bool
    is_resolvable: bool
    errors: list[IssueOut] = Field(default_factory=list)
    warnings: list[IssueOut] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ValidationResult, is_resolvable: bool) -> "MarketValidationResponse":
        data = result.to_dict()
        return cls(
            is_valid=data["is_valid"],
            is_resolvable=is_resolvable,
            errors=[IssueOut(**e) for e in data["errors"]],
            warnings=[IssueOut(**w) for w in data["warnings"]],
        )
