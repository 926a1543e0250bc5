"""
Translation of ZooKeeper client exceptions into coordination errors.

Used by PathStore and the transaction coordinator so that kazoo
exceptions never reach callers. Conditions a caller is expected to
handle as booleans (node exists, node missing on create/delete) are dealt
with at the call site before this translation applies.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from kazoo.exceptions import (
    AuthFailedError,
    ConnectionClosedError,
    ConnectionLoss,
    KazooException,
    NoAuthError,
    NoNodeError,
    OperationTimeoutError,
    SessionExpiredError,
)
from kazoo.handlers.threading import KazooTimeoutError

from coordmesh.core.errors import (
    AuthFailure,
    CoordinationError,
    NodeMissing,
    ServiceError,
    SessionConnectionError,
)

CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionLoss,
    ConnectionClosedError,
    SessionExpiredError,
    OperationTimeoutError,
    KazooTimeoutError,
)


@contextmanager
def translated(operation: str, path: Optional[str] = None) -> Iterator[None]:
    """Re-raise kazoo exceptions from the block as CoordinationError subclasses."""
    try:
        yield
    except CoordinationError:
        raise
    except CONNECTION_ERRORS as e:
        raise SessionConnectionError.connection_lost(operation, path, cause=e) from e
    except NoNodeError as e:
        raise NodeMissing.for_path(path or "", operation, cause=e) from e
    except (NoAuthError, AuthFailedError) as e:
        raise AuthFailure.denied(path or "", operation, cause=e) from e
    except KazooException as e:
        raise ServiceError.unexpected(operation, path, cause=e) from e
