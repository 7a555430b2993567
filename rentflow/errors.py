"""Application error taxonomy and response helpers."""

from decimal import Decimal
from typing import Any, Dict

from fastapi import status


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str,
        http_status: int = 400,
        details: Dict[str, Any] | None = None,
    ):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or missing input; never reaches storage."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else None
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST, details)


class BadRequest(AppError):
    """Unparseable or incomplete webhook payload."""

    def __init__(self, message: str = "Bad request"):
        super().__init__(message, "bad_request", status.HTTP_400_BAD_REQUEST)


class Unauthorized(AppError):
    """Shared-secret token missing or wrong."""

    def __init__(self, message: str = "Invalid webhook token"):
        super().__init__(message, "unauthorized", status.HTTP_401_UNAUTHORIZED)


class NotFound(AppError):
    """Referenced lease, unit, billing, payment or landlord does not exist."""

    def __init__(self, message: str):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class DuplicateError(AppError):
    """Idempotency key collision (receipt reference)."""

    def __init__(self, message: str, receipt_reference: str | None = None):
        details = {"receipt_reference": receipt_reference} if receipt_reference else None
        super().__init__(message, "duplicate", status.HTTP_409_CONFLICT, details)


class ConflictError(AppError):
    """Concurrent writers kept colliding on the same key."""

    def __init__(self, message: str):
        super().__init__(message, "conflict", status.HTTP_409_CONFLICT)


class NoEligiblePayments(AppError):
    """No requested payment is confirmed, unpaid and routable to a payout account."""

    def __init__(self, message: str = "No valid payments found for disbursement"):
        super().__init__(message, "no_eligible_payments", status.HTTP_400_BAD_REQUEST)


class BelowMinimumPayout(AppError):
    """A landlord group totals less than the payout floor."""

    def __init__(self, landlord_id: int, amount: Decimal, minimum: Decimal):
        self.landlord_id = landlord_id
        self.amount = amount
        self.minimum = minimum
        super().__init__(
            f"Minimum payout is ₱{minimum} (₱{amount})",
            "below_minimum_payout",
            status.HTTP_400_BAD_REQUEST,
            {"landlord_id": landlord_id, "amount": str(amount), "minimum": str(minimum)},
        )


class ExternalGatewayError(AppError):
    """Payout or payment processor call failed or timed out; outcome unknown."""

    def __init__(
        self,
        message: str = "Failed to initiate disbursement",
        upstream: Any = None,
        completed: list[str] | None = None,
    ):
        self.upstream = upstream
        self.completed = completed or []
        super().__init__(
            message,
            "external_gateway_error",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"upstream": upstream, "completed": self.completed},
        )


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    body: Dict[str, Any] = {
        "code": error.code,
        "message": error.message,
    }
    body.update(error.details)
    return {"error": body}


__all__ = [
    "AppError",
    "ValidationError",
    "BadRequest",
    "Unauthorized",
    "NotFound",
    "DuplicateError",
    "ConflictError",
    "NoEligiblePayments",
    "BelowMinimumPayout",
    "ExternalGatewayError",
    "error_response",
]
