"""
Transaction module: Fenced atomic multi-operation batches.
"""

from coordmesh.transaction.coordinator import (
    FencedTransactionCoordinator,
    TransactionState,
)
from coordmesh.transaction.operations import (
    CreateNode,
    DeleteNode,
    PendingOperation,
    SetData,
)

__all__ = [
    "FencedTransactionCoordinator",
    "TransactionState",
    "CreateNode",
    "DeleteNode",
    "PendingOperation",
    "SetData",
]
