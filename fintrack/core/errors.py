"""
Error taxonomy for the ledger.

Every failure that crosses the service boundary is a LedgerError carrying a
stable machine-readable ``kind``, a human-readable message and whether the
caller may retry. The HTTP layer maps each kind to a status code.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""

    kind = "ledger_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body = {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """Malformed or out-of-range input."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(LedgerError):
    """Entity does not exist or is not owned by the caller."""

    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, ref: Any = None):
        message = f"{entity} not found" if ref is None else f"{entity} '{ref}' not found"
        super().__init__(message, {"entity": entity})
        self.entity = entity
        self.ref = ref


class AuthError(LedgerError):
    """No valid caller identity."""

    kind = "unauthorized"
    status_code = 401


class ConflictError(LedgerError):
    """Uniqueness or referential rule would be broken."""

    kind = "conflict"
    status_code = 409


class StorageError(LedgerError):
    """The persistent store failed mid-operation. Nothing was committed."""

    kind = "storage_error"
    status_code = 503
    retryable = True


class StorageTimeoutError(StorageError):
    """The persistent store did not answer in time. Nothing was committed."""

    kind = "storage_timeout"
