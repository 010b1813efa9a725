"""Error types and user-facing error descriptions for the sync engine."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx


class SyncError(Exception):
    """Base class for sync engine failures."""


class QueuePersistenceError(SyncError):
    """The offline queue could not be written to storage."""


class UnsupportedOperation(SyncError):
    def __init__(self, entity_type: str, kind: str):
        super().__init__(f"No backend handler for {kind} {entity_type}")
        self.entity_type = entity_type
        self.kind = kind


class BackendError(SyncError):
    """Non-success response from the backend."""

    def __init__(self, status: int, message: str, code: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code
        self.details = details

    def __str__(self) -> str:
        prefix = f"[{self.status}]"
        if self.code:
            prefix += f" {self.code}"
        return f"{prefix} {self.args[0]}"


class ErrorType(str, Enum):
    NETWORK = "network"
    DATABASE = "database"
    VALIDATION = "validation"
    AUTH = "auth"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class AppError:
    type: ErrorType
    message: str
    details: Optional[str] = None
    resolution: Optional[str] = None
    retryable: bool = True


UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def parse_error(exc: BaseException) -> AppError:
    """Describe ``exc`` for the user-facing error channel."""

    if isinstance(exc, BackendError):
        if exc.code == UNIQUE_VIOLATION:
            return AppError(
                type=ErrorType.DATABASE,
                message="This item already exists.",
                details="A unique constraint was violated.",
                resolution="Please use a different name or identifier.",
                retryable=False,
            )
        if exc.code == FOREIGN_KEY_VIOLATION:
            return AppError(
                type=ErrorType.DATABASE,
                message="Referenced item not found.",
                details="The item you're trying to reference doesn't exist.",
                resolution="Please ensure all referenced items exist before proceeding.",
                retryable=False,
            )
        if exc.status in (401, 403):
            return AppError(
                type=ErrorType.AUTH,
                message="Not authorised to change this item.",
                details=str(exc),
                resolution="Please sign in again.",
                retryable=False,
            )
        return AppError(
            type=ErrorType.DATABASE,
            message="Database operation failed.",
            details=str(exc),
            resolution="Please try again later or contact support if the issue persists.",
            retryable=True,
        )

    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return AppError(
            type=ErrorType.NETWORK,
            message="Network connection failed.",
            details="Unable to reach the server.",
            resolution="Please check your internet connection and try again.",
            retryable=True,
        )

    if isinstance(exc, (ValueError, UnsupportedOperation)):
        return AppError(
            type=ErrorType.VALIDATION,
            message="The change could not be processed.",
            details=str(exc),
            resolution="Please check the entered values.",
            retryable=False,
        )

    return AppError(
        type=ErrorType.UNKNOWN,
        message="An unexpected error occurred.",
        details=str(exc),
        resolution="Please try again or contact support if the issue persists.",
        retryable=True,
    )


def offline_notice(entity_type: str, kind: str) -> AppError:
    past = {"create": "created", "update": "updated", "delete": "deleted"}.get(kind, "saved")
    return AppError(
        type=ErrorType.NETWORK,
        message="You are currently offline.",
        details=f"The {entity_type} will be {past} when you reconnect.",
        resolution="Your changes have been saved and will sync automatically.",
        retryable=False,
    )


def dead_letter_notice(entity_type: str, kind: str, exc: Optional[BaseException]) -> AppError:
    cause = parse_error(exc) if exc is not None else None
    return AppError(
        type=cause.type if cause else ErrorType.UNKNOWN,
        message=f"A queued {kind} of a {entity_type} could not be synced and was discarded.",
        details=cause.details if cause else None,
        resolution="The change was permanently lost. Please make it again.",
        retryable=False,
    )


__all__ = [
    "AppError",
    "BackendError",
    "ErrorType",
    "QueuePersistenceError",
    "SyncError",
    "UnsupportedOperation",
    "dead_letter_notice",
    "offline_notice",
    "parse_error",
]
