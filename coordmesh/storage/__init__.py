"""
Storage module: Node CRUD, path initialization, and client backends.

Components:
- PathStore: primitive node operations over an open session
- RecursivePathInitializer: create a path and its missing ancestors
- CoordinationClient / TransactionRequest: client surface (kazoo shaped)
- InMemoryCoordinationService: in-process backend for development and tests
"""

from coordmesh.storage.protocols import CoordinationClient, TransactionRequest
from coordmesh.storage.backends import (
    IN_MEMORY_ADDRESS,
    InMemoryClient,
    InMemoryCoordinationService,
    InMemoryTransaction,
)
from coordmesh.storage.path_store import PathStore
from coordmesh.storage.paths import RecursivePathInitializer

__all__ = [
    "CoordinationClient",
    "TransactionRequest",
    "IN_MEMORY_ADDRESS",
    "InMemoryClient",
    "InMemoryCoordinationService",
    "InMemoryTransaction",
    "PathStore",
    "RecursivePathInitializer",
]
