"""Shared result shape for the collecting validators.

Validators never stop at the first problem: every issue is appended to
`errors` (blocking) or `warnings` (advisory) and the caller decides.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from src.pm_common.errors import InvalidUserIdError


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    code: str
    message: str


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, field_name: str, code: str, message: str) -> None:
        self.errors.append(ValidationIssue(field_name, code, message))

    def warn(self, field_name: str, code: str, message: str) -> None:
        self.warnings.append(ValidationIssue(field_name, code, message))

    def merge(self, other: "ValidationResult", prefix: str = "") -> None:
        for issue in other.errors:
            self.errors.append(ValidationIssue(prefix + issue.field, issue.code, issue.message))
        for issue in other.warnings:
            self.warnings.append(ValidationIssue(prefix + issue.field, issue.code, issue.message))

    def error_codes(self) -> list[str]:
        return [e.code for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [asdict(e) for e in self.errors],
            "warnings": [asdict(w) for w in self.warnings],
        }


def require_user_id(user_id: str | None) -> str:
    """Fail fast on a missing user id, before any I/O."""
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidUserIdError()
    return user_id.strip()
