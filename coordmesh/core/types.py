"""
Core Type Definitions for the Coordination Layer

Implements Result/Either monads for zero-exception control flow in
configuration and validation code, plus the small value types shared by
the session, storage and transaction layers.

Design Principles:
- Never use null for absence in validation paths (use Result)
- Immutable value objects (frozen dataclasses with __slots__)
- Node paths are plain strings; helpers here validate and split them

Complexity: O(1) for all type operations except path helpers, which are
O(d) in the path depth.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable, hashable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return value, ignoring default."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Immutable container for error information.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Return default value on error."""
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        """Propagate error through monadic chain."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Wall-clock timestamp with nanosecond precision.

    Used to stamp errors so they can be correlated with service-side logs.
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(nanos=time.time_ns())

    @classmethod
    def from_millis(cls, millis: int) -> Timestamp:
        return cls(nanos=millis * 1_000_000)

    @property
    def millis(self) -> int:
        return self.nanos // 1_000_000

    @property
    def seconds(self) -> float:
        return self.nanos / 1_000_000_000

    def elapsed_millis(self) -> float:
        return (time.time_ns() - self.nanos) / 1_000_000

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos})"


# =============================================================================
# NODE CREATION MODE
# =============================================================================
class CreateMode(Enum):
    """
    Persistence mode of a created node.

    Ephemeral nodes are removed by the service when the owning session
    closes; sequential nodes get a zero-padded counter appended to their
    name by the service.
    """

    PERSISTENT = "persistent"
    EPHEMERAL = "ephemeral"
    PERSISTENT_SEQUENTIAL = "persistent_sequential"
    EPHEMERAL_SEQUENTIAL = "ephemeral_sequential"

    @property
    def is_ephemeral(self) -> bool:
        return self in (CreateMode.EPHEMERAL, CreateMode.EPHEMERAL_SEQUENTIAL)

    @property
    def is_sequential(self) -> bool:
        return self in (
            CreateMode.PERSISTENT_SEQUENTIAL,
            CreateMode.EPHEMERAL_SEQUENTIAL,
        )


# =============================================================================
# AUTH CREDENTIAL
# =============================================================================
@dataclass(frozen=True, slots=True)
class AuthCredential:
    """
    Authentication pair added to a session at connect time.

    The credential is opaque bytes; for the ``digest`` scheme it is
    ``b"user:password"``.
    """

    scheme: str
    credential: bytes

    @classmethod
    def digest(cls, username: str, password: str) -> AuthCredential:
        return cls(scheme="digest", credential=f"{username}:{password}".encode("utf-8"))

    def as_auth_data(self) -> tuple[str, str]:
        """(scheme, credential) pair in the form the ZooKeeper client expects."""
        return (self.scheme, self.credential.decode("utf-8"))

    def __repr__(self) -> str:
        # Never render credential material
        return f"AuthCredential(scheme={self.scheme!r}, credential=<redacted>)"


# =============================================================================
# NODE PATHS
# =============================================================================
PATH_SEPARATOR: str = "/"
ROOT_PATH: str = "/"

_RESERVED_SEGMENTS: frozenset[str] = frozenset({".", ".."})


def check_path(path: Any) -> Result[str, str]:
    """
    Validate an absolute node path.

    Returns:
        Ok[str]: The path, unchanged
        Err[str]: Why the path was rejected
    """
    if not isinstance(path, str) or not path:
        return Err("path must be a non-empty string")
    if not path.startswith(PATH_SEPARATOR):
        return Err("path must be absolute")
    if path == ROOT_PATH:
        return Ok(path)
    if path.endswith(PATH_SEPARATOR):
        return Err("path must not end with a separator")
    if "\x00" in path:
        return Err("path must not contain null characters")
    for segment in path[1:].split(PATH_SEPARATOR):
        if not segment:
            return Err("path contains an empty segment")
        if segment in _RESERVED_SEGMENTS:
            return Err(f"path contains reserved segment {segment!r}")
    return Ok(path)


def ancestor_prefixes(path: str) -> list[str]:
    """
    Ordered prefixes of an absolute path, shortest first, path included.

    ``ancestor_prefixes("/a/b/c") == ["/a", "/a/b", "/a/b/c"]``.
    The caller validates the path first.
    """
    prefixes: list[str] = []
    current = ""
    for segment in path.split(PATH_SEPARATOR)[1:]:
        current = f"{current}{PATH_SEPARATOR}{segment}"
        prefixes.append(current)
    return prefixes


def parent_path(path: str) -> str:
    """Parent of an absolute path; the root is its own parent."""
    head, _, _ = path.rpartition(PATH_SEPARATOR)
    return head or ROOT_PATH


def node_path(root: str, name: str) -> str:
    """Path of a named child under root; literal concatenation, no normalization."""
    return root + PATH_SEPARATOR + name
