"""
Domain errors raised below the route layer.

Each error carries the HTTP status it maps to; main.py renders them as
``{"detail": message}``, the same shape FastAPI uses for HTTPException.
"""
from typing import Optional


class ShopError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(ShopError):
    status_code = 400


class Unauthorized(ShopError):
    status_code = 401


class Forbidden(ShopError):
    status_code = 403


class NotFound(ShopError):
    status_code = 404


class Conflict(ShopError):
    status_code = 400


class InvalidItem(ShopError):
    status_code = 400


class InsufficientStock(ShopError):
    status_code = 400

    def __init__(self, title: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {title}. Available: {available}, Requested: {requested}"
        )
        self.title = title
        self.available = available
        self.requested = requested


class StockConflict(ShopError):
    """Stock changed between validation and decrement; the client may retry."""

    status_code = 409

    def __init__(self, title: str):
        super().__init__(f"Stock changed during processing for {title}. Please try again.")
        self.title = title


class CouponRejected(ShopError):
    status_code = 400

    MESSAGES = {
        "not-found": "Coupon invalid or expired",
        "inactive": "Coupon invalid or expired",
        "expired": "Coupon invalid or expired",
        "usage-exceeded": "Coupon usage limit exceeded",
        "below-minimum": "Minimum order amount not met",
    }

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or self.MESSAGES.get(reason, "Coupon cannot be applied"))
        self.reason = reason


class UploadFailed(ShopError):
    status_code = 400
