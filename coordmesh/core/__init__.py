"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the coordination layer:
- Result/Either monads for configuration and validation paths
- Error hierarchy with stable error codes
- Configuration management with validation
"""

from coordmesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    CreateMode,
    AuthCredential,
    check_path,
    node_path,
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

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "CreateMode",
    "AuthCredential",
    "check_path",
    "node_path",
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
]
