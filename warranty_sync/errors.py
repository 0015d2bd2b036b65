"""
Warranty Sync - Error Taxonomy

Every error that can abort a sync call carries the HTTP status the API layer
answers with. Per-record failures never abort a batch; they are collected as
``SyncErrorEntry`` rows instead.
"""

from __future__ import annotations

from typing import Any, Optional


class SyncError(Exception):
    """Base class for errors surfaced as the whole call's result."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        payload: dict = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigurationError(SyncError):
    """A required credential or setting is absent."""

    status_code = 400


class AuthError(SyncError):
    """The OAuth token exchange did not return a token."""

    status_code = 400


class NotFoundError(SyncError):
    """A targeted lookup found none of the requested keys."""

    status_code = 404


class NoRecordsError(SyncError):
    """A sweep or date-range query matched nothing."""

    status_code = 400


class ZohoAPIError(SyncError):
    """The remote CRM answered a list or query call with an error."""

    status_code = 500


class MappingError(SyncError):
    """An invalid field-mapping edit."""

    status_code = 400


class MappingConflictError(MappingError):
    status_code = 409


class RecordReconcileError(Exception):
    """One raw record could not be shaped or persisted."""

    def __init__(self, identifier: Optional[str], cause: BaseException) -> None:
        message = str(cause) or type(cause).__name__
        super().__init__(message)
        self.identifier = identifier
        self.cause = cause


class UnauthorizedError(SyncError):
    """The caller is not an authenticated admin."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Any = None) -> None:
        super().__init__(message, details)


class InvalidPayloadError(SyncError):
    """An inbound payload lacks a field the operation needs."""

    status_code = 400
