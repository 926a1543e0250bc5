"""
Coordination Client Protocols: The Slice of the ZooKeeper Client We Use

Structural subtyping protocols (PEP 544) describing exactly the surface of
``kazoo.client.KazooClient`` the coordination layer depends on. Both the
real client and the in-memory backend satisfy them, so the session,
storage and transaction layers never import a concrete client.

Design Principles:
    - Method names, signatures and raised exceptions follow kazoo, so a
      KazooClient satisfies the protocol without an adapter
    - Node metadata is kazoo's ``ZnodeStat``; ACLs are kazoo ``ACL`` tuples
    - Failures are kazoo exceptions; translation to coordination errors
      happens one layer up, in PathStore and the transaction coordinator
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol, Sequence, runtime_checkable

from kazoo.protocol.states import ZnodeStat
from kazoo.security import ACL


# =============================================================================
# TRANSACTION PROTOCOL
# =============================================================================
@runtime_checkable
class TransactionRequest(Protocol):
    """
    Atomic multi-operation request (ZooKeeper ``multi``).

    Operations are buffered client-side and sent together on commit().
    The service applies all of them or none.

    commit() returns one entry per operation, in order. On success each
    entry is that operation's result (created path, True, or ZnodeStat).
    On failure every entry is an exception instance: ``RolledBackError``
    for operations before the failing one, the failing operation's own
    error, and ``RuntimeInconsistency`` for operations after it.
    """

    def create(
        self,
        path: str,
        value: bytes = b"",
        acl: Optional[Sequence[ACL]] = None,
        ephemeral: bool = False,
        sequence: bool = False,
    ) -> None:
        ...

    def delete(self, path: str, version: int = -1) -> None:
        ...

    def set_data(self, path: str, value: bytes, version: int = -1) -> None:
        ...

    def commit(self) -> list[Any]:
        ...


# =============================================================================
# CLIENT PROTOCOL
# =============================================================================
@runtime_checkable
class CoordinationClient(Protocol):
    """
    Connection to a coordination service ensemble.

    Lifecycle: start() blocks until connected or raises
    ``KazooTimeoutError``; stop() ends the session (ephemeral nodes go
    away); close() releases resources of a stopped client.

    Credentials handed over during the handshake fail asynchronously: the
    client moves to ``KeeperState.AUTH_FAILED`` and listeners see
    ``KazooState.LOST``. add_auth() on a started client waits for the
    server's answer and raises ``AuthFailedError`` instead.
    """

    @property
    def connected(self) -> bool:
        ...

    @property
    def client_state(self) -> str:
        ...

    def add_listener(self, listener: Callable[[str], Any]) -> None:
        ...

    def remove_listener(self, listener: Callable[[str], Any]) -> None:
        ...

    def start(self, timeout: float = 15) -> None:
        ...

    def add_auth(self, scheme: str, credential: str) -> None:
        ...

    def stop(self) -> None:
        ...

    def close(self) -> None:
        ...

    def exists(self, path: str, watch: Any = None) -> Optional[ZnodeStat]:
        ...

    def get(self, path: str, watch: Any = None) -> tuple[bytes, ZnodeStat]:
        ...

    def set(self, path: str, value: bytes, version: int = -1) -> ZnodeStat:
        ...

    def get_children(self, path: str, watch: Any = None) -> list[str]:
        ...

    def create(
        self,
        path: str,
        value: bytes = b"",
        acl: Optional[Sequence[ACL]] = None,
        ephemeral: bool = False,
        sequence: bool = False,
        makepath: bool = False,
    ) -> str:
        ...

    def delete(self, path: str, version: int = -1, recursive: bool = False) -> bool:
        ...

    def get_acls(self, path: str) -> tuple[list[ACL], ZnodeStat]:
        ...

    def transaction(self) -> TransactionRequest:
        ...
