"""Balance integrity check: pure, no I/O.

A non-numeric or non-finite field is itself a violation; it is never
coerced to zero, so a corrupt record cannot pass by accident.
"""

import logging
import math
from typing import Any

from config.settings import settings
from src.pm_reconciliation.domain.models import IntegrityReport

logger = logging.getLogger(__name__)

_AMOUNT_FIELDS = (
    ("available_tokens", "Available tokens"),
    ("committed_tokens", "Committed tokens"),
    ("total_earned", "Total earned"),
    ("total_spent", "Total spent"),
)


def _finite(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def validate_balance_integrity(balance: Any) -> IntegrityReport:
    """Check one balance record. Accepts a UserBalance or any object/mapping with its fields."""
    report = IntegrityReport()

    def _get(name: str) -> Any:
        if isinstance(balance, dict):
            return balance.get(name)
        return getattr(balance, name, None)

    values: dict[str, float] = {}
    for name, label in _AMOUNT_FIELDS:
        value = _get(name)
        if not _finite(value):
            report.violations.append(f"{label} must be a finite number")
        elif value < 0:
            report.violations.append(f"{label} cannot be negative")
        values[name] = value

    if all(_finite(v) for v in values.values()):
        total = values["available_tokens"] + values["committed_tokens"]
        net = values["total_earned"] - values["total_spent"]
        if total > net + settings.BALANCE_TOLERANCE:
            report.violations.append(
                f"Total tokens ({_fmt(total)}) exceed net earned tokens ({_fmt(net)})"
            )

    version = _get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version <= 0:
        report.violations.append("Version must be positive")

    if report.violations:
        logger.warning(
            "Balance integrity violations for user=%s: %s",
            _get("user_id"), report.violations,
        )
    return report
