"""Market-creation validation.

A market is only worth creating if it can be resolved with evidence: a
concrete question, a deadline, and a short list of mutually exclusive
options. All problems are collected into one ValidationResult.
"""

import re
from datetime import datetime, timedelta
from typing import Any

from src.pm_common.datetime_utils import ensure_utc, utc_now
from src.pm_common.validation import ValidationResult

SUBJECTIVE_WORDS = (
    "best", "worst", "better", "worse", "good", "bad", "great", "terrible",
    "amazing", "awful", "excellent", "poor", "outstanding", "horrible",
    "fantastic", "disappointing", "superior", "inferior", "perfect", "flawed",
    "beautiful", "ugly", "attractive", "unattractive", "impressive", "unimpressive",
    "successful", "unsuccessful", "popular", "unpopular", "favorite", "least favorite",
)

AMBIGUOUS_WORDS = (
    "soon", "later", "eventually", "might", "could", "possibly", "probably",
    "likely", "unlikely", "maybe", "perhaps", "around", "approximately",
    "about", "roughly", "some", "many", "few", "several", "most", "majority",
)

VAGUE_OPTION_WORDS = (
    "other", "something else", "different", "alternative", "various", "multiple",
    "some", "any", "none of the above", "depends",
)

MIN_TITLE_LENGTH = 10
MIN_DESCRIPTION_LENGTH = 20
MIN_OPTIONS = 2
MAX_OPTIONS = 5
MAX_DAYS_AHEAD = 365
FAR_FUTURE_DAYS = 180
SIMILARITY_THRESHOLD = 0.8

# Any of these makes a market unresolvable; the rest are fixable polish.
CRITICAL_ERROR_CODES = frozenset({
    "SUBJECTIVE_LANGUAGE",
    "INVALID_END_DATE",
    "INVALID_OPTION_COUNT",
    "TITLE_REQUIRED",
    "END_DATE_REQUIRED",
    "OPTIONS_REQUIRED",
})


def _found_words(text: str, words: tuple[str, ...]) -> list[str]:
    lowered = text.lower()
    return [w for w in words if re.search(rf"\b{re.escape(w)}\b", lowered)]


def string_similarity(a: str, b: str) -> float:
    """1 - Levenshtein distance / longer length. Identical strings score 1.0."""
    if not a:
        return 1.0 if not b else 0.0
    if not b:
        return 0.0
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return 1 - previous[-1] / max(len(a), len(b))


def _option_text(option: Any) -> str:
    if isinstance(option, dict):
        return str(option.get("text") or "")
    return str(getattr(option, "text", "") or "")


class MarketValidationService:
    def validate_market(
        self,
        title: str | None,
        description: str | None,
        end_date: datetime | None,
        options: list[Any] | None,
        now: datetime | None = None,
    ) -> ValidationResult:
        result = ValidationResult()
        result.merge(self.validate_title(title))
        result.merge(self.validate_description(description))
        result.merge(self.validate_end_date(end_date, now))
        result.merge(self.validate_options(options))
        return result

    def validate_title(self, title: str | None) -> ValidationResult:
        result = ValidationResult()
        if not title or not title.strip():
            result.error("title", "TITLE_REQUIRED", "Market title is required")
            return result
        trimmed = title.strip()
        if len(trimmed) < MIN_TITLE_LENGTH:
            result.error(
                "title",
                "TITLE_TOO_SHORT",
                f"Market title must be at least {MIN_TITLE_LENGTH} characters long",
            )
        if not trimmed.endswith("?"):
            result.warn(
                "title",
                "AMBIGUOUS_LANGUAGE",
                "Market titles should be phrased as questions for clarity",
            )
        subjective = _found_words(trimmed, SUBJECTIVE_WORDS)
        if subjective:
            result.error(
                "title",
                "SUBJECTIVE_LANGUAGE",
                f'Avoid subjective terms: "{", ".join(subjective)}". '
                "Markets need clear, factual outcomes that can be verified with evidence.",
            )
        ambiguous = _found_words(trimmed, AMBIGUOUS_WORDS)
        if ambiguous:
            result.warn(
                "title",
                "AMBIGUOUS_LANGUAGE",
                f'Consider being more specific. Ambiguous terms detected: "{", ".join(ambiguous)}".',
            )
        return result

    def validate_description(self, description: str | None) -> ValidationResult:
        result = ValidationResult()
        if not description or not description.strip():
            result.error("description", "DESCRIPTION_REQUIRED", "Market description is required")
        elif len(description.strip()) < MIN_DESCRIPTION_LENGTH:
            result.error(
                "description",
                "DESCRIPTION_TOO_SHORT",
                f"Market description must be at least {MIN_DESCRIPTION_LENGTH} characters long",
            )
        return result

    def validate_end_date(
        self, end_date: datetime | None, now: datetime | None = None
    ) -> ValidationResult:
        result = ValidationResult()
        if end_date is None:
            result.error(
                "end_date",
                "END_DATE_REQUIRED",
                "Markets must have a specific end date when the outcome will be known",
            )
            return result
        now = now or utc_now()
        remaining = ensure_utc(end_date) - now
        if remaining <= timedelta(0):
            result.error("end_date", "INVALID_END_DATE", "Market end date must be in the future")
            return result
        if remaining > timedelta(days=MAX_DAYS_AHEAD):
            result.error(
                "end_date",
                "END_DATE_TOO_FAR",
                "Market end date cannot be more than 12 months in the future",
            )
        elif remaining > timedelta(days=FAR_FUTURE_DAYS):
            result.warn(
                "end_date",
                "END_DATE_FAR_FUTURE",
                "Market ends more than 6 months from now; long-term markets are harder to predict",
            )
        if remaining < timedelta(days=1):
            result.warn(
                "end_date",
                "END_DATE_VERY_SOON",
                "Market ends in less than 24 hours; consider extending to allow more participation",
            )
        return result

    def validate_options(self, options: list[Any] | None) -> ValidationResult:
        result = ValidationResult()
        if not options:
            result.error("options", "OPTIONS_REQUIRED", "Markets must have prediction options")
            return result
        if len(options) < MIN_OPTIONS:
            result.error(
                "options", "INVALID_OPTION_COUNT", f"Markets must have at least {MIN_OPTIONS} options"
            )
        if len(options) > MAX_OPTIONS:
            result.error(
                "options",
                "INVALID_OPTION_COUNT",
                f"Markets cannot have more than {MAX_OPTIONS} options",
            )

        texts = [_option_text(o) for o in options]
        if any(not t.strip() for t in texts):
            result.error("options", "EMPTY_OPTION_TEXT", "All options must have text")

        normalized = [t.strip().lower() for t in texts]
        non_empty = [t for t in normalized if t]
        if len(set(non_empty)) != len(non_empty):
            result.error(
                "options", "DUPLICATE_OPTIONS", "Options must be unique and mutually exclusive"
            )

        for i in range(len(texts)):
            for j in range(i + 1, len(texts)):
                if not normalized[i] or normalized[i] == normalized[j]:
                    continue
                if string_similarity(normalized[i], normalized[j]) > SIMILARITY_THRESHOLD:
                    result.warn(
                        "options",
                        "SIMILAR_OPTIONS",
                        f'Options "{texts[i]}" and "{texts[j]}" are very similar',
                    )

        for text in texts:
            vague = _found_words(text, VAGUE_OPTION_WORDS)
            if vague:
                result.warn(
                    "options",
                    "VAGUE_OPTION_TEXT",
                    f'Option "{text}" contains vague terms: "{", ".join(vague)}"',
                )
        return result

    def validate_field(self, field_name: str, value: Any) -> ValidationResult:
        """Single-field check for live form feedback; unknown fields pass."""
        validators = {
            "title": self.validate_title,
            "description": self.validate_description,
            "end_date": self.validate_end_date,
            "options": self.validate_options,
        }
        validator = validators.get(field_name)
        return validator(value) if validator else ValidationResult()

    def is_resolvable(
        self,
        title: str | None,
        description: str | None,
        end_date: datetime | None,
        options: list[Any] | None,
    ) -> bool:
        result = self.validate_market(title, description, end_date, options)
        return not any(e.code in CRITICAL_ERROR_CODES for e in result.errors)

    @staticmethod
    def validation_guidance() -> dict[str, Any]:
        return {
            "good_examples": [
                "Will Drake release an album before December 31, 2024?",
                "Will Bitcoin reach $100,000 before March 1, 2025?",
                "Which song will be #1 on Billboard Hot 100 on New Year's Day 2025?",
            ],
            "bad_examples": [
                {"text": "Is Drake the best rapper?", "reason": "Subjective opinion"},
                {"text": "Will Drake ever tour again?", "reason": "No specific end date"},
                {
                    "text": "Will Drake release music AND go on tour?",
                    "reason": "Multiple outcomes required; split into separate markets",
                },
            ],
            "tips": [
                "Use specific dates and deadlines",
                "Avoid subjective words like \"best\", \"good\", \"popular\"",
                "Make sure outcomes can be verified with evidence",
                "Keep options mutually exclusive",
                f"Use {MIN_OPTIONS}-{MAX_OPTIONS} options",
            ],
        }
