"""Exception taxonomy for the catalog synchronization engine.

Synchronous errors (validation, authorization, pre-queue conflicts) are raised
back to the caller before anything is queued. Errors raised inside a running
job are caught by the job handler, which rolls back, marks the job failed and
reports the failure asynchronously.
"""

from typing import Any


class CatalogSyncError(Exception):
    """Base class for all catalog synchronization errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(CatalogSyncError):
    """Malformed or out-of-bounds row, cell or payload."""


class AuthorizationError(CatalogSyncError):
    """Caller lacks the capability required for the operation."""


class NotFoundError(CatalogSyncError):
    """A referenced entity does not exist."""


class ConflictError(CatalogSyncError):
    """Duplicate name within a batch or a natural-key collision."""


class TransactionError(CatalogSyncError):
    """Storage-layer abort or rollback during a unit of work."""


class ExternalServiceError(CatalogSyncError):
    """POS vendor API failure, including expired or invalid credentials."""
