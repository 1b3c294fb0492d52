"""
Domain error kinds for the inventory and refund core.

Recoverable errors are raised before any mutation is flushed, or the enclosing
transaction is rolled back, so a rejected operation leaves every record in
its pre-call state.

HTTP mapping used by the routes:
- ValidationError / ProductLockedError -> 400
- NotFoundError -> 404
- ConflictError / InsufficientStockError / ConcurrencyConflictError -> 409
- RefundExceedsLimitError -> 422
- ConsistencyViolationError -> 500 (fatal, always logged)
"""

from flask import current_app

from .validation import ValidationError, ConflictError


class NotFoundError(LookupError):
    """Referenced aggregate does not exist (or is outside the store)."""


class ProductLockedError(ValidationError):
    """A locked commercial term was changed on a product that has sales."""


class InsufficientStockError(ValueError):
    """Mutation would drive a derived stock quantity negative."""

    def __init__(self, message: str, *, product_id: int | None = None, component: str | None = None):
        super().__init__(message)
        self.product_id = product_id
        self.component = component


class RefundExceedsLimitError(ValueError):
    """Requested refund total is larger than the refundable ceiling."""

    def __init__(self, refund_total, refundable):
        super().__init__(
            f"Refund total {refund_total} exceeds refundable amount {refundable}"
        )
        self.refund_total = refund_total
        self.refundable = refundable


class ConcurrencyConflictError(RuntimeError):
    """Aggregate changed between read and write; retry from a fresh read."""


class ConsistencyViolationError(RuntimeError):
    """A derived-state invariant failed after an update. Never patched silently."""


__all__ = [
    "DOMAIN_ERRORS",
    "error_response",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "ProductLockedError",
    "InsufficientStockError",
    "RefundExceedsLimitError",
    "ConcurrencyConflictError",
    "ConsistencyViolationError",
]


# (error class, HTTP status), most specific first
HTTP_STATUS = (
    (ProductLockedError, 400),
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InsufficientStockError, 409),
    (ConcurrencyConflictError, 409),
    (RefundExceedsLimitError, 422),
    (ConsistencyViolationError, 500),
)

DOMAIN_ERRORS = tuple(cls for cls, _ in HTTP_STATUS)


def error_response(exc: Exception):
    """Route helper: ({"error": message}, status) for a domain error."""
    for cls, status in HTTP_STATUS:
        if isinstance(exc, cls):
            if status >= 500:
                current_app.logger.error("Consistency failure: %s", exc)
                return {"error": "Internal consistency error"}, status
            body = {"error": str(exc)}
            if isinstance(exc, RefundExceedsLimitError):
                body["refundable"] = str(exc.refundable)
                body["refund_total"] = str(exc.refund_total)
            return body, status
    raise exc
