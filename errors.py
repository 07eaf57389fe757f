"""
Domain errors

Core modules raise these; main.py turns them into the JSON error envelope
``{"success": false, "message": ..., "errors": [...]}``.
"""

from typing import Any, Dict, List, Optional


class ShopError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationFailed(ShopError):
    status_code = 400
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(errors=[{"field": field, "message": message}])


class Unauthorized(ShopError):
    status_code = 401
    default_message = "Not authorized"


class Forbidden(ShopError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ShopError):
    status_code = 404
    default_message = "Not found"


class Conflict(ShopError):
    status_code = 409
    default_message = "Conflict"


class OutOfStock(ShopError):
    status_code = 400
    default_message = "Product out of stock"


class InsufficientStock(ShopError):
    status_code = 400
    default_message = "Insufficient stock"


class Unavailable(ShopError):
    status_code = 400
    default_message = "Product not found or unavailable"


class InvalidTransition(ShopError):
    status_code = 400
    default_message = "Invalid order status transition"


class WebhookRejected(ShopError):
    status_code = 401
    default_message = "Webhook signature verification failed"


class DatabaseUnavailable(ShopError):
    status_code = 503
    default_message = "Database not available"
