# Overview: Error taxonomy shared by every service; routes map it to HTTP answers.

from __future__ import annotations


class ServiceError(Exception):
    """Base class for business errors raised before any mutation is committed."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(ServiceError):
    """Missing product, sale, purchase, client, quote, register..."""
    status_code = 404


class ValidationError(ServiceError):
    """400-level input problem (malformed or out-of-range value)."""
    status_code = 400


class InvalidQuantityError(ValidationError):
    """Refund or receipt quantity outside the allowed range."""


class OverpaymentError(ValidationError):
    """Payment larger than the remaining balance of a sale."""


class InsufficientStockError(ServiceError):
    """Requested quantity exceeds the product's current stock."""
    status_code = 409


class StateTransitionError(ServiceError):
    """Operation is illegal for the document's current status."""
    status_code = 409


class AlreadyCancelledError(StateTransitionError):
    pass


class AlreadyClosedError(StateTransitionError):
    pass


class AlreadyOpenError(StateTransitionError):
    pass


class AlreadyConvertedError(StateTransitionError):
    pass


class CancelledDocumentError(StateTransitionError):
    """Operation targets a cancelled purchase or sale."""


class ConflictError(ServiceError):
    """409-level uniqueness conflict (e.g., duplicate SKU)."""
    status_code = 409


class ConfigurationError(ServiceError):
    """Database schema does not match the models (pending migration)."""
    status_code = 500


class PermissionDeniedError(ServiceError):
    """Acting user may not perform this operation (e.g., closing another user's register)."""
    status_code = 403
