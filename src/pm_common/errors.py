"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Input / User
  2xxx: Ledger (balances, transactions)
  3xxx: Market
  4xxx: Commitment
  9xxx: System
"""

from typing import Any


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Input / User ---

class InvalidUserIdError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "User ID is required", 400)


class InvalidInputError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1002, f"Invalid input: {detail}", 422)


# --- 2xxx: Ledger ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: float, available: float) -> None:
        self.required = required
        self.available = available
        super().__init__(
            2001,
            f"Insufficient balance. Available: {available:g}, Required: {required:g}",
            422,
        )


class BalanceNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"Balance not found for user {user_id}", 404)


class ConcurrentModificationError(AppError):
    """A guarded write lost the race; the caller may retry."""

    def __init__(self, resource: str, expected: object) -> None:
        self.resource = resource
        self.expected = expected
        super().__init__(
            2003, f"{resource} changed concurrently (expected {expected})", 409
        )


class IntegrityViolationError(AppError):
    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(2004, "Balance integrity violated: " + "; ".join(violations), 422)


class TransactionNotFoundError(AppError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(2005, f"Transaction not found: {transaction_id}", 404)


# --- 3xxx: Market ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: str) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketClosedError(AppError):
    def __init__(self, market_id: str, reason: str) -> None:
        super().__init__(3002, f"Market {market_id} is closed: {reason}", 422)


class OptionNotFoundError(AppError):
    def __init__(self, option_id: str) -> None:
        super().__init__(3003, f"Option not found: {option_id}", 422)


# --- 4xxx: Commitment ---

class InvalidCommitmentAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Invalid commitment amount: {detail}", 422)


class CommitmentNotFoundError(AppError):
    def __init__(self, commitment_id: str) -> None:
        super().__init__(4002, f"Commitment not found: {commitment_id}", 404)


class CommitmentNotActiveError(AppError):
    def __init__(self, commitment_id: str, status: str) -> None:
        super().__init__(
            4003, f"Commitment {commitment_id} in status {status} cannot be settled", 422
        )


class CommitmentRejectedError(AppError):
    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        self.details = details or []
        super().__init__(4004, message, 422)


class RollbackNotAllowedError(AppError):
    def __init__(self, target: str, reason: str) -> None:
        self.reason = reason
        super().__init__(4005, f"Cannot roll back {target}: {reason}", 409)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self, retry_after: int = 60) -> None:
        self.retry_after = retry_after
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
