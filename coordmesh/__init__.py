"""
Coordmesh: Client-Side Coordination over a ZooKeeper Ensemble

Thin, typed layer for processes that keep shared state in a
hierarchical node store:
- Session Manager: connection lifecycle, fixed-interval retries, auth
- Path Store: node CRUD with optimistic versions and ACLs
- Recursive Path Initializer: idempotent "mkdir -p" for node paths
- Fenced Transaction Coordinator: atomic multi-op batches guarded by a
  marker node, for mutual exclusion among writers

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from coordmesh.core.types import (
    Result,
    Ok,
    Err,
    CreateMode,
    AuthCredential,
)
from coordmesh.core.errors import (
    ErrorCode,
    CoordinationError,
    ConfigMissing,
    SessionConnectionError,
    VersionConflict,
    NodeMissing,
    InvalidPath,
    MultiOpAborted,
    TransactionStateError,
    AuthFailure,
    ServiceError,
)
from coordmesh.core.config import CoordinationConfig

# Reliability exports
from coordmesh.reliability import RetryPolicy

# Storage exports
from coordmesh.storage import (
    InMemoryCoordinationService,
    PathStore,
    RecursivePathInitializer,
)

# Transaction exports
from coordmesh.transaction import (
    FencedTransactionCoordinator,
    TransactionState,
)

# Session exports
from coordmesh.session import (
    InMemorySessionFactory,
    KazooSessionFactory,
    LoginContext,
    SecureKazooSessionFactory,
    Session,
    SessionManager,
    SessionState,
)

__all__ = [
    "__version__",
    # Core
    "Result",
    "Ok",
    "Err",
    "CreateMode",
    "AuthCredential",
    "ErrorCode",
    "CoordinationError",
    "ConfigMissing",
    "SessionConnectionError",
    "VersionConflict",
    "NodeMissing",
    "InvalidPath",
    "MultiOpAborted",
    "TransactionStateError",
    "AuthFailure",
    "ServiceError",
    "CoordinationConfig",
    # Reliability
    "RetryPolicy",
    # Storage
    "InMemoryCoordinationService",
    "PathStore",
    "RecursivePathInitializer",
    # Transaction
    "FencedTransactionCoordinator",
    "TransactionState",
    # Session
    "InMemorySessionFactory",
    "KazooSessionFactory",
    "LoginContext",
    "SecureKazooSessionFactory",
    "Session",
    "SessionManager",
    "SessionState",
]
