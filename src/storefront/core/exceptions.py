import sys
import traceback
from typing import Any, Dict, List, Optional


class BaseAPIException(Exception):
    """
    Root of every error the API reports to callers.

    `message` is what the shopper or admin sees; `internal_message` only goes
    to the log. The app factory renders to_dict() as the error envelope.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message
        self.internal_message = internal_message or message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__.replace("Error", "").upper()
        self.details = details or {}
        # Raised while handling another exception: keep its trace for the log
        self.traceback = traceback.format_exc() if sys.exc_info()[0] else None
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            },
        }


class ValidationError(BaseAPIException):
    """Bad request data. field_errors maps a field name to its messages."""

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: Optional[Dict[str, List[str]]] = None,
    ):
        details = {"field_errors": field_errors} if field_errors else {}
        super().__init__(message, 400, "VALIDATION_ERROR", details)


class NotFoundError(BaseAPIException):
    """A product, cart line, checkout session, order or banner that doesn't exist (or isn't yours)"""

    def __init__(self, resource: str = "Resource", resource_id: Optional[Any] = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message += f" with ID: {resource_id}"
        super().__init__(message, 404, "NOT_FOUND")


class UnauthorizedError(BaseAPIException):
    """Missing, expired or invalid access token"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401, "UNAUTHORIZED")


class ForbiddenError(BaseAPIException):
    """Signed in, but the profile role doesn't allow the action"""

    def __init__(self, message: str = "Access forbidden"):
        super().__init__(message, 403, "FORBIDDEN")


class ConflictError(BaseAPIException):
    """A unique value (SKU, slug, order number) is already taken"""

    def __init__(self, message: str = "Resource conflict", conflict_field: Optional[str] = None):
        details = {"conflict_field": conflict_field} if conflict_field else {}
        super().__init__(message, 409, "CONFLICT", details)


class BusinessLogicError(BaseAPIException):
    """
    The request is well-formed but a store rule forbids it: an empty cart at
    checkout, steps taken out of order, a per-line quantity cap.
    """

    def __init__(self, message: str, rule: Optional[str] = None):
        details = {"violated_rule": rule} if rule else {}
        super().__init__(message, 422, "BUSINESS_LOGIC_ERROR", details)


class InsufficientStockError(BusinessLogicError):
    """Fewer units on hand than the cart line or order asks for"""

    def __init__(self, message: str, available: int, requested: int):
        super().__init__(message, rule="insufficient_stock")
        self.details.update({"available": available, "requested": requested})


class WebhookSignatureError(BaseAPIException):
    """A payment webhook whose signature header doesn't match its body"""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, 400, "INVALID_SIGNATURE")


class DatabaseError(BaseAPIException):
    """A failed query. Callers get a generic message; the detail is logged."""

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(
            "An internal error occurred. Please try again later.",
            500,
            "DATABASE_ERROR",
            internal_message=message,
        )
