"""EvidenceValidationService: validation and sanitization of resolution evidence.

Content is sanitized before it is checked, and the sanitized text is what
callers should store. Sanitization only removes characters that are
invisible or unsafe in storage keys; it never rewrites visible text.
"""

import logging
import re
import unicodedata
from urllib.parse import urlsplit

from src.pm_common.enums import EvidenceType
from src.pm_evidence.domain.models import (
    ALLOWED_FILE_TYPES,
    MAX_DESCRIPTION_LENGTH,
    MAX_FIELD_NAME_BYTES,
    MAX_FILE_SIZE,
    MAX_FILENAME_LENGTH,
    MAX_NOTE_LENGTH,
    MAX_URL_LENGTH,
    SHORTENER_DOMAINS,
    Evidence,
    EvidenceFile,
    EvidenceListResult,
    EvidenceValidationResult,
)

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_ZERO_WIDTH = re.compile(r"[\u200b-\u200d\u2060\ufeff]")
_PRIVATE_USE = re.compile(r"[\ue000-\uf8ff\U000f0000-\U000ffffd\U00100000-\U0010fffd]")
_SURROGATES = re.compile(r"[\ud800-\udfff]")
_UNSAFE_FILENAME = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_UNSAFE_FIELD_NAME = re.compile(r"[~*/\[\]]")

# Sanitization that strips more than this share of the text is reported.
_SANITIZED_WARN_RATIO = 0.8


def sanitize_content(content: str | None) -> str | None:
    """Drop control (except newline and tab), zero-width, private-use and
    lone surrogate code points, then NFC-normalize and trim."""
    if not content:
        return content
    cleaned = _CONTROL_CHARS.sub("", content)
    cleaned = _ZERO_WIDTH.sub("", cleaned)
    cleaned = _PRIVATE_USE.sub("", cleaned)
    cleaned = _SURROGATES.sub("", cleaned)
    return unicodedata.normalize("NFC", cleaned).strip()


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME.sub("_", filename)
    cleaned = re.sub(r"\.+", ".", cleaned)
    if cleaned.startswith("."):
        cleaned = "_" + cleaned[1:]
    return cleaned.strip()


class EvidenceValidationService:
    def validate_evidence(self, evidence: Evidence) -> EvidenceValidationResult:
        result = EvidenceValidationResult(sanitized_content=evidence.content)

        if not evidence.type:
            result.error("type", "CONTENT_EMPTY", "Evidence type is required")
        if not evidence.content or not evidence.content.strip():
            result.error("content", "CONTENT_EMPTY", "Evidence content cannot be empty")

        if evidence.content and evidence.type:
            try:
                kind = EvidenceType(evidence.type)
            except ValueError:
                result.error("type", "INVALID_TYPE", f"Unknown evidence type: {evidence.type}")
            else:
                if kind == EvidenceType.URL:
                    result.sanitized_content = self._check_url(evidence.content, result)
                elif kind == EvidenceType.DESCRIPTION:
                    result.sanitized_content = self._check_text(
                        evidence.content, MAX_DESCRIPTION_LENGTH, "content", result
                    )
                else:
                    # screenshots carry a storage path or upload identifier
                    result.sanitized_content = sanitize_content(evidence.content)

        if evidence.description:
            self._check_text(evidence.description, MAX_NOTE_LENGTH, "description", result)
        return result

    def _check_url(self, url: str, result: EvidenceValidationResult) -> str | None:
        if len(url) > MAX_URL_LENGTH:
            result.error(
                "content",
                "CONTENT_TOO_LONG",
                f"URL too long. Maximum {MAX_URL_LENGTH} characters allowed",
            )
        sanitized = sanitize_content(url)
        try:
            parts = urlsplit(sanitized or "")
            hostname = parts.hostname
        except ValueError:
            parts, hostname = None, None

        if parts is None or not parts.scheme or not hostname:
            result.error("content", "INVALID_URL", "Invalid URL format")
            return sanitized
        if parts.scheme.lower() not in ("http", "https"):
            result.error("content", "INVALID_URL", "URL must use HTTP or HTTPS protocol")
        if any(domain in hostname for domain in SHORTENER_DOMAINS):
            result.warn(
                "content",
                "SUSPICIOUS_DOMAIN",
                "Shortened URLs may not be reliable evidence sources",
            )
        return sanitized

    def _check_text(
        self, text: str, max_length: int, field_name: str, result: EvidenceValidationResult
    ) -> str | None:
        if len(text) > max_length:
            result.error(
                field_name,
                "CONTENT_TOO_LONG",
                f"Description too long. Maximum {max_length} characters allowed",
            )
        sanitized = sanitize_content(text)
        if field_name == "content" and len(sanitized or "") < len(text) * _SANITIZED_WARN_RATIO:
            result.warn(
                field_name,
                "CONTENT_SANITIZED",
                "Content contained characters that were removed during sanitization",
            )
        return sanitized

    def validate_file(
        self,
        file: EvidenceFile,
        max_file_size: int = MAX_FILE_SIZE,
        allowed_types: tuple[str, ...] = ALLOWED_FILE_TYPES,
    ) -> EvidenceValidationResult:
        result = EvidenceValidationResult()
        if file.size > max_file_size:
            result.error(
                "file",
                "FILE_TOO_LARGE",
                f"File too large. Maximum size is {round(max_file_size / 1024 / 1024)}MB",
            )
        if file.mime_type not in allowed_types:
            result.error(
                "file",
                "INVALID_FILE_TYPE",
                f"File type not allowed. Allowed types: {', '.join(allowed_types)}",
            )
        if len(file.name) > MAX_FILENAME_LENGTH:
            result.error(
                "filename",
                "INVALID_FILENAME",
                f"Filename too long. Maximum {MAX_FILENAME_LENGTH} characters allowed",
            )
        if _UNSAFE_FILENAME.search(file.name):
            result.error("filename", "INVALID_FILENAME", "Filename contains invalid characters")
        result.sanitized_content = sanitize_filename(file.name)
        if not result.is_valid:
            logger.info("Rejected evidence file %r: %s", file.name, result.error_codes())
        return result

    def validate_field_name(self, field_name: str) -> EvidenceValidationResult:
        """Keys stored inside evidence documents: no ~*/[] and no reserved "__" prefix."""
        result = EvidenceValidationResult()
        if _UNSAFE_FIELD_NAME.search(field_name):
            result.error(
                "field_name",
                "UNSAFE_FIELD_NAME",
                "Field name contains invalid characters (~*/[])",
            )
        if field_name.startswith("__"):
            result.error("field_name", "UNSAFE_FIELD_NAME", 'Field name cannot start with "__"')
        if len(field_name.encode("utf-8")) > MAX_FIELD_NAME_BYTES:
            result.error(
                "field_name",
                "UNSAFE_FIELD_NAME",
                f"Field name too long. Maximum {MAX_FIELD_NAME_BYTES} bytes allowed",
            )
        return result

    def validate_evidence_list(self, items: list[Evidence]) -> EvidenceListResult:
        combined = EvidenceListResult()
        for index, item in enumerate(items):
            single = self.validate_evidence(item)
            combined.merge(single, prefix=f"evidence[{index}].")
            combined.sanitized_contents.append(single.sanitized_content)
        return combined
