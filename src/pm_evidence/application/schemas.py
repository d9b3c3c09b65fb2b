"""Pydantic schemas for the evidence validation API."""

from pydantic import BaseModel, Field

from src.pm_evidence.domain.models import Evidence, EvidenceFile, EvidenceValidationResult


class EvidenceInput(BaseModel):
    # Left as plain strings: an unknown or missing type is a collected issue.
    type: str | None = None
    content: str | None = None
    description: str | None = None

    def to_domain(self) -> Evidence:
        return Evidence(type=self.type, content=self.content, description=self.description)


class EvidenceListRequest(BaseModel):
    items: list[EvidenceInput] = Field(..., max_length=50)


class EvidenceFileInput(BaseModel):
    name: str
    mime_type: str
    size: int = Field(..., ge=0)

    def to_domain(self) -> EvidenceFile:
        return EvidenceFile(name=self.name, mime_type=self.mime_type, size=self.size)


class EvidenceIssue(BaseModel):
    field: str
    code: str
    message: str


class EvidenceValidationResponse(BaseModel):
    is_valid: bool
    errors: list[EvidenceIssue]
    warnings: list[EvidenceIssue]
    sanitized_content: str | None = None

    @classmethod
    def from_domain(cls, result: EvidenceValidationResult) -> "EvidenceValidationResponse":
        data = result.to_dict()
        return cls(
            is_valid=data["is_valid"],
            errors=[EvidenceIssue(**e) for e in data["errors"]],
            warnings=[EvidenceIssue(**w) for w in data["warnings"]],
            sanitized_content=result.sanitized_content,
        )
