"""
Error Hierarchy for the Coordination Layer

Design Principles:
- Expected, local conditions (node already exists, node absent) are
  returned as booleans by the storage layer and never raised
- Every other failure is raised as a CoordinationError subclass; the
  underlying ZooKeeper client exception is kept as the cause
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation with service-side logs

Usage:
    try:
        store.set_data("/app/config", payload, expected_version=stat.version)
    except VersionConflict:
        reread_and_retry()
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence
from uuid import uuid4

from coordmesh.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Configuration errors
    - 2xxx: Session errors
    - 3xxx: Node errors
    - 4xxx: Transaction errors
    - 5xxx: Security errors
    - 9xxx: Unmapped service errors
    """

    # Configuration errors (1xxx)
    CONFIG_MISSING = 1001

    # Session errors (2xxx)
    SESSION_RETRY_EXHAUSTED = 2001
    SESSION_CONNECTION_LOST = 2002
    SESSION_NOT_OPEN = 2003

    # Node errors (3xxx)
    NODE_VERSION_CONFLICT = 3001
    NODE_MISSING = 3002
    NODE_INVALID_PATH = 3003

    # Transaction errors (4xxx)
    TRANSACTION_ABORTED = 4001
    TRANSACTION_INVALID_STATE = 4002

    # Security errors (5xxx)
    SECURITY_AUTH_FAILED = 5001
    SECURITY_ACCESS_DENIED = 5002

    # Service errors (9xxx)
    SERVICE_UNEXPECTED = 9001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass(eq=False)
class CoordinationError(Exception):
    """
    Base class for all coordination layer errors.

    Provides common infrastructure for error handling:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.cause is not None:
            self.__cause__ = self.cause

    def with_context(self, **kwargs: Any) -> CoordinationError:
        """Add context to error (returns new instance of the same type)."""
        return dataclasses.replace(self, context={**self.context, **kwargs})

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize error to dictionary for logging.

        Note: Excludes the cause stack trace.
        """
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass(eq=False, repr=False)
class ConfigMissing(CoordinationError):
    """A required configuration value is absent. Fatal at startup."""

    @classmethod
    def key(cls, name: str) -> ConfigMissing:
        return cls(
            code=ErrorCode.CONFIG_MISSING,
            message=f"{name} is not configured",
            context={"key": name},
        )


# =============================================================================
# SESSION ERRORS
# =============================================================================
@dataclass(eq=False, repr=False)
class SessionConnectionError(CoordinationError):
    """
    The session could not reach the ensemble.

    Raised when the connect retry budget is exhausted, when the
    connection drops in the middle of a request, or when a request is
    issued on a session that is not open.
    """

    @classmethod
    def retry_exhausted(
        cls,
        address: str,
        attempts: int,
        cause: Optional[BaseException] = None,
    ) -> SessionConnectionError:
        """All connection attempts failed."""
        return cls(
            code=ErrorCode.SESSION_RETRY_EXHAUSTED,
            message=f"Could not connect to {address} after {attempts} attempts",
            cause=cause,
            context={"address": address, "attempts": attempts},
        )

    @classmethod
    def connection_lost(
        cls,
        operation: str,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> SessionConnectionError:
        """Connection dropped while a request was outstanding."""
        return cls(
            code=ErrorCode.SESSION_CONNECTION_LOST,
            message=f"Connection lost during {operation}",
            cause=cause,
            context={"operation": operation, "path": path},
        )

    @classmethod
    def not_open(cls, state: str) -> SessionConnectionError:
        return cls(
            code=ErrorCode.SESSION_NOT_OPEN,
            message=f"Session is not open (state={state})",
            context={"state": state},
        )


# =============================================================================
# NODE ERRORS
# =============================================================================
@dataclass(eq=False, repr=False)
class VersionConflict(CoordinationError):
    """
    A version-guarded write found a different stored version.

    Recoverable: re-read the node and retry with the fresh version.
    """

    @classmethod
    def stale(
        cls,
        path: str,
        expected_version: int,
        cause: Optional[BaseException] = None,
    ) -> VersionConflict:
        return cls(
            code=ErrorCode.NODE_VERSION_CONFLICT,
            message=f"Version {expected_version} of {path} is stale",
            cause=cause,
            context={"path": path, "expected_version": expected_version},
        )


@dataclass(eq=False, repr=False)
class NodeMissing(CoordinationError):
    """
    An operation that needs an existing node found none.

    Plain create/delete report absence as a boolean instead.
    """

    @classmethod
    def for_path(
        cls,
        path: str,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> NodeMissing:
        return cls(
            code=ErrorCode.NODE_MISSING,
            message=f"Node {path} does not exist ({operation})",
            cause=cause,
            context={"path": path, "operation": operation},
        )

    @classmethod
    def parent_of(
        cls,
        path: str,
        cause: Optional[BaseException] = None,
    ) -> NodeMissing:
        return cls(
            code=ErrorCode.NODE_MISSING,
            message=f"Parent of {path} does not exist",
            cause=cause,
            context={"path": path, "operation": "create"},
        )


@dataclass(eq=False, repr=False)
class InvalidPath(CoordinationError):
    """Relative or malformed node path. Never retried."""

    @classmethod
    def rejected(cls, path: Any, reason: str) -> InvalidPath:
        return cls(
            code=ErrorCode.NODE_INVALID_PATH,
            message=f"Invalid path {path!r}: {reason}",
            context={"path": str(path), "reason": reason},
        )


# =============================================================================
# TRANSACTION ERRORS
# =============================================================================
@dataclass(eq=False, repr=False)
class MultiOpAborted(CoordinationError):
    """
    An operation inside an atomic batch failed; nothing was applied.

    The context records which staged operation failed, why, and whether
    the failure was the fencing marker colliding with another writer.
    """

    @classmethod
    def at(
        cls,
        marker_path: str,
        failed_index: int,
        operation: str,
        path: str,
        reason: str,
        operations: Sequence[str] = (),
        cause: Optional[BaseException] = None,
        marker_collision: bool = False,
    ) -> MultiOpAborted:
        detail = "fencing marker already present" if marker_collision else reason
        return cls(
            code=ErrorCode.TRANSACTION_ABORTED,
            message=(
                f"Transaction fenced by {marker_path} aborted at operation "
                f"{failed_index} ({operation} {path}): {detail}"
            ),
            cause=cause,
            context={
                "marker_path": marker_path,
                "failed_index": failed_index,
                "operation": operation,
                "path": path,
                "reason": reason,
                "marker_collision": marker_collision,
                "operations": list(operations),
            },
        )

    @property
    def failed_index(self) -> int:
        return self.context["failed_index"]

    @property
    def reason(self) -> str:
        return self.context["reason"]

    @property
    def marker_collision(self) -> bool:
        return self.context["marker_collision"]


@dataclass(eq=False, repr=False)
class TransactionStateError(CoordinationError):
    """An operation was attempted on a transaction that is no longer open."""

    @classmethod
    def not_open(cls, marker_path: str, state: str, action: str) -> TransactionStateError:
        return cls(
            code=ErrorCode.TRANSACTION_INVALID_STATE,
            message=f"Cannot {action}: transaction fenced by {marker_path} is {state}",
            context={"marker_path": marker_path, "state": state, "action": action},
        )


# =============================================================================
# SECURITY ERRORS
# =============================================================================
@dataclass(eq=False, repr=False)
class AuthFailure(CoordinationError):
    """
    Credentials were rejected, or the session lacks permission.

    Fatal unless the caller reconfigures credentials.
    """

    @classmethod
    def rejected(
        cls,
        address: str,
        schemes: Sequence[str],
        cause: Optional[BaseException] = None,
    ) -> AuthFailure:
        """The ensemble rejected the session's credentials."""
        return cls(
            code=ErrorCode.SECURITY_AUTH_FAILED,
            message=f"Authentication with {address} failed",
            cause=cause,
            context={"address": address, "schemes": list(schemes)},
        )

    @classmethod
    def denied(
        cls,
        path: str,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> AuthFailure:
        """The node's ACL does not grant the operation to this session."""
        return cls(
            code=ErrorCode.SECURITY_ACCESS_DENIED,
            message=f"Not authorized to {operation} {path}",
            cause=cause,
            context={"path": path, "operation": operation},
        )


# =============================================================================
# SERVICE ERRORS
# =============================================================================
@dataclass(eq=False, repr=False)
class ServiceError(CoordinationError):
    """The service answered with an error this layer has no mapping for."""

    @classmethod
    def unexpected(
        cls,
        operation: str,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> ServiceError:
        return cls(
            code=ErrorCode.SERVICE_UNEXPECTED,
            message=f"Unexpected service error during {operation}: {type(cause).__name__}",
            cause=cause,
            context={"operation": operation, "path": path},
        )
