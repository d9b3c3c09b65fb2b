"""Domain models for pm_evidence: resolution evidence submitted for a market."""

from dataclasses import dataclass, field

from src.pm_common.enums import EvidenceType
from src.pm_common.validation import ValidationResult

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_FILE_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
)
MAX_URL_LENGTH = 2048
MAX_DESCRIPTION_LENGTH = 5000
MAX_NOTE_LENGTH = 500
MAX_FILENAME_LENGTH = 255
MAX_FIELD_NAME_BYTES = 1500

SHORTENER_DOMAINS = ("bit.ly", "tinyurl.com", "goo.gl")


@dataclass
class Evidence:
    type: EvidenceType | str | None = None
    content: str | None = None
    description: str | None = None


@dataclass
class EvidenceFile:
    name: str
    mime_type: str
    size: int


@dataclass
class EvidenceValidationResult(ValidationResult):
    sanitized_content: str | None = None


@dataclass
class EvidenceListResult(ValidationResult):
    sanitized_contents: list[str | None] = field(default_factory=list)
