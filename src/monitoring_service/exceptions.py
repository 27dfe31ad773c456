"""
Typed failures raised by the monitoring service core.

The router maps these to HTTP status codes; nothing below the router knows
about transport concerns.
"""

from __future__ import annotations

from typing import Any


class MonitoringServiceError(Exception):
    """Base class for all service failures."""


class ResourceNotFoundError(MonitoringServiceError):
    """A referenced id or business key has no matching record."""

    def __init__(self, message: str, resource_id: Any = None) -> None:
        super().__init__(message)
        self.resource_id = resource_id

    @classmethod
    def for_id(cls, resource_type: str, resource_id: Any) -> "ResourceNotFoundError":
        return cls(f"{resource_type} not found with ID: {resource_id}", resource_id)


class InvalidSearchRequestError(MonitoringServiceError):
    """Search or pagination constraints were violated."""


class BusinessValidationError(MonitoringServiceError):
    """A write request broke a business rule; mapped to 400, not raised yet."""


class ResourceAlreadyExistsError(MonitoringServiceError):
    """Reserved for duplicate business-key enforcement; not raised yet."""


class StorageError(MonitoringServiceError):
    """The persistence layer failed; the original error is chained as __cause__."""
