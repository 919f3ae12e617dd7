# Overview: Error taxonomy shared by the ledger engine, services, and routes.

"""
Service errors carry a human-readable message plus a `details` dict that
routes return verbatim next to "error".

HTTP mapping (see routes):
- InvalidRequest, InsufficientStock -> 400
- NotFound -> 404
- StoreFailure -> 500
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""
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


class InvalidRequest(ServiceError):
    """Malformed or empty input, bad status value, illegal transition."""
    status_code = 400


class NotFound(ServiceError):
    """Unknown product, sale, category, or alert id."""
    status_code = 404


class InsufficientStock(ServiceError):
    """Exit or sale quantity exceeds available stock."""
    status_code = 400

    def __init__(self, product_id: int, available: int, requested: int, product_name: str | None = None):
        super().__init__(
            "Insufficient stock",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class StoreFailure(ServiceError):
    """Underlying transaction or connectivity failure."""
    status_code = 500
