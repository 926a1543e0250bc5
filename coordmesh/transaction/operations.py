"""
Pending Operations: Immutable Steps of a Fenced Transaction

Each operation knows how to stage itself onto a client-side multi
request. Operations are frozen once built; a transaction only ever
appends them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Optional, Union

from kazoo.security import ACL

from coordmesh.core import constants as C
from coordmesh.core.types import CreateMode

if TYPE_CHECKING:
    from coordmesh.storage.protocols import TransactionRequest


@dataclass(frozen=True, slots=True)
class CreateNode:
    """Create ``path`` with ``data``; ``acl=None`` means the service default."""
    path: str
    data: bytes = b""
    acl: Optional[tuple[ACL, ...]] = None
    mode: CreateMode = CreateMode.PERSISTENT

    kind: ClassVar[str] = "create"

    def stage(self, request: TransactionRequest) -> None:
        request.create(
            self.path,
            self.data,
            list(self.acl) if self.acl is not None else None,
            ephemeral=self.mode.is_ephemeral,
            sequence=self.mode.is_sequential,
        )


@dataclass(frozen=True, slots=True)
class DeleteNode:
    """Delete ``path`` (no children allowed), optionally version-guarded."""
    path: str
    expected_version: int = C.ANY_VERSION

    kind: ClassVar[str] = "delete"

    def stage(self, request: TransactionRequest) -> None:
        request.delete(self.path, version=self.expected_version)


@dataclass(frozen=True, slots=True)
class SetData:
    """Replace the payload of ``path`` if its version matches."""
    path: str
    data: bytes
    expected_version: int = C.ANY_VERSION

    kind: ClassVar[str] = "set_data"

    def stage(self, request: TransactionRequest) -> None:
        request.set_data(self.path, self.data, version=self.expected_version)


PendingOperation = Union[CreateNode, DeleteNode, SetData]


def describe(operation: PendingOperation) -> str:
    """Short form for logs and error context, e.g. ``create /app/x``."""
    return f"{operation.kind} {operation.path}"
