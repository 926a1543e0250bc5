"""
In-Memory Coordination Service: Development and Testing Backend

Provides an in-process stand-in for a ZooKeeper ensemble:
- InMemoryCoordinationService: the shared node tree (one per "ensemble")
- InMemoryClient: a session to it, with the kazoo client surface
- InMemoryTransaction: atomic multi-operation request

Design Principles:
    - Full protocol compliance for seamless production swap: same
      method signatures, same kazoo exceptions, same multi result shape
    - Every request is serialized by one service-wide lock, so a multi
      is applied atomically and in a single total order
    - Optimistic versions, ACL permission checks (world and digest
      schemes), ephemeral and sequential nodes
    - Fault injection for connect timeouts, auth rejection and dropped
      requests

Performance Characteristics:
    - exists/get/set/create/delete: O(1) average case
    - recursive delete: O(k) in the number of descendants
    - multi: O(n) in the size of the tree (applied to a working copy)
"""

from __future__ import annotations

import dataclasses
import itertools
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from kazoo.exceptions import (
    AuthFailedError,
    BadVersionError,
    ConnectionClosedError,
    InvalidACLError,
    NoAuthError,
    NoChildrenForEphemeralsError,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    RolledBackError,
    RuntimeInconsistency,
)
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import KazooState, KeeperState, ZnodeStat
from kazoo.security import (
    ACL,
    Id,
    OPEN_ACL_UNSAFE,
    Permissions,
    make_digest_acl_credential,
)

from coordmesh.core import constants as C
from coordmesh.core.types import ROOT_PATH, parent_path


# =============================================================================
# CONSTANTS
# =============================================================================
ANYONE_ID: Id = Id("world", "anyone")
IN_MEMORY_ADDRESS: str = "inmemory:2181"


# =============================================================================
# NODE RECORD
# =============================================================================
@dataclass
class _NodeRecord:
    """
    Internal node with the counters ZooKeeper keeps in a Stat.

    ``cversion`` counts child changes and doubles as the sequence counter
    for sequential children.
    """
    data: bytes
    acl: tuple[ACL, ...]
    czxid: int
    mzxid: int
    pzxid: int
    ctime: int
    mtime: int
    version: int = 0
    cversion: int = 0
    aversion: int = 0
    ephemeral_owner: int = 0
    children: set[str] = field(default_factory=set)

    def stat(self) -> ZnodeStat:
        return ZnodeStat(
            czxid=self.czxid,
            mzxid=self.mzxid,
            ctime=self.ctime,
            mtime=self.mtime,
            version=self.version,
            cversion=self.cversion,
            aversion=self.aversion,
            ephemeralOwner=self.ephemeral_owner,
            dataLength=len(self.data),
            numChildren=len(self.children),
            pzxid=self.pzxid,
        )

    def copy(self) -> _NodeRecord:
        return dataclasses.replace(self, children=set(self.children))


def _now_ms() -> int:
    return int(time.time() * 1000)


def _identities(auth_data: Sequence[tuple[str, str]]) -> frozenset[Id]:
    """ACL identities a session holds, given its (scheme, credential) pairs."""
    ids = {ANYONE_ID}
    for scheme, credential in auth_data:
        if scheme == "digest":
            username, _, password = credential.partition(":")
            ids.add(Id("digest", make_digest_acl_credential(username, password)))
        else:
            ids.add(Id(scheme, credential))
    return frozenset(ids)


def _check_value(value: Any) -> None:
    if not isinstance(value, bytes):
        raise TypeError("Invalid type for 'value' (must be a byte string)")


# =============================================================================
# NODE TREE
# =============================================================================
class _NodeTree:
    """
    Mutable node tree plus the zxid counter.

    Every mutating method validates before it changes anything, so a
    failed call leaves the tree untouched.
    """

    __slots__ = ("nodes", "zxid")

    def __init__(self, nodes: dict[str, _NodeRecord], zxid: int) -> None:
        self.nodes = nodes
        self.zxid = zxid

    @classmethod
    def empty(cls) -> _NodeTree:
        now = _now_ms()
        root = _NodeRecord(
            data=b"",
            acl=tuple(OPEN_ACL_UNSAFE),
            czxid=0,
            mzxid=0,
            pzxid=0,
            ctime=now,
            mtime=now,
        )
        return cls({ROOT_PATH: root}, 0)

    def clone(self) -> _NodeTree:
        return _NodeTree({path: node.copy() for path, node in self.nodes.items()}, self.zxid)

    def _next_zxid(self) -> int:
        self.zxid += 1
        return self.zxid

    def lookup(self, path: str) -> _NodeRecord:
        node = self.nodes.get(path)
        if node is None:
            raise NoNodeError()
        return node

    @staticmethod
    def require(node: _NodeRecord, perm: int, identities: frozenset[Id]) -> None:
        for entry in node.acl:
            if entry.perms & perm and entry.id in identities:
                return
        raise NoAuthError()

    def create(
        self,
        path: str,
        value: bytes,
        acl: Optional[Sequence[ACL]],
        ephemeral: bool,
        sequence: bool,
        session_id: int,
        identities: frozenset[Id],
    ) -> str:
        _check_value(value)
        acl = tuple(OPEN_ACL_UNSAFE if acl is None else acl)
        if not acl:
            raise InvalidACLError()

        parent_name = parent_path(path)
        parent = self.lookup(parent_name)
        self.require(parent, Permissions.CREATE, identities)

        if sequence:
            path = f"{path}{parent.cversion:0{C.SEQUENCE_WIDTH}d}"
        if path in self.nodes:
            raise NodeExistsError()
        if parent.ephemeral_owner:
            raise NoChildrenForEphemeralsError()

        zxid = self._next_zxid()
        now = _now_ms()
        self.nodes[path] = _NodeRecord(
            data=value,
            acl=acl,
            czxid=zxid,
            mzxid=zxid,
            pzxid=zxid,
            ctime=now,
            mtime=now,
            ephemeral_owner=session_id if ephemeral else 0,
        )
        parent.children.add(path.rsplit("/", 1)[1])
        parent.cversion += 1
        parent.pzxid = zxid
        return path

    def delete(self, path: str, version: int, identities: frozenset[Id]) -> bool:
        if path == ROOT_PATH:
            raise NoAuthError()
        node = self.lookup(path)
        parent = self.nodes[parent_path(path)]
        self.require(parent, Permissions.DELETE, identities)
        if version != C.ANY_VERSION and version != node.version:
            raise BadVersionError()
        if node.children:
            raise NotEmptyError()

        zxid = self._next_zxid()
        del self.nodes[path]
        parent.children.discard(path.rsplit("/", 1)[1])
        parent.cversion += 1
        parent.pzxid = zxid
        return True

    def set_data(
        self,
        path: str,
        value: bytes,
        version: int,
        identities: frozenset[Id],
    ) -> ZnodeStat:
        _check_value(value)
        node = self.lookup(path)
        self.require(node, Permissions.WRITE, identities)
        if version != C.ANY_VERSION and version != node.version:
            raise BadVersionError()

        node.data = value
        node.version += 1
        node.mzxid = self._next_zxid()
        node.mtime = _now_ms()
        return node.stat()


# =============================================================================
# IN-MEMORY COORDINATION SERVICE
# =============================================================================
class InMemoryCoordinationService:
    """
    In-process coordination service shared by any number of clients.

    Thread Safety:
        One lock serializes every request, which gives the same single
        total order of writes a real ensemble provides.

    Example:
        service = InMemoryCoordinationService()
        client = service.client()
        client.start()
        client.create("/app", b"")
    """

    __slots__ = (
        "_tree",
        "_lock",
        "_session_ids",
        "_rejected_schemes",
        "_pending_connect_failures",
        "_pending_request_failures",
        "available",
        "connect_attempts",
    )

    def __init__(self, rejected_schemes: Sequence[str] = ()) -> None:
        """
        Initialize an empty tree holding only the root node.

        Args:
            rejected_schemes: Auth schemes whose credentials the service refuses
        """
        self._tree = _NodeTree.empty()
        self._lock = threading.RLock()
        self._session_ids = itertools.count(0x1000)
        self._rejected_schemes = frozenset(rejected_schemes)
        self._pending_connect_failures = 0
        self._pending_request_failures: deque[BaseException] = deque()
        self.available = True
        self.connect_attempts = 0

    def client(self, **kwargs: Any) -> InMemoryClient:
        """New, unstarted client bound to this service."""
        return InMemoryClient(self, **kwargs)

    # -------------------------------------------------------------------------
    # Fault injection
    # -------------------------------------------------------------------------
    def fail_connects(self, count: int) -> None:
        """Make the next ``count`` connection attempts time out."""
        with self._lock:
            self._pending_connect_failures += count

    def fail_next_request(self, error: BaseException) -> None:
        """Raise ``error`` from the next request instead of serving it."""
        with self._lock:
            self._pending_request_failures.append(error)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------
    def open_session(self) -> int:
        with self._lock:
            self.connect_attempts += 1
            if not self.available:
                raise KazooTimeoutError("Connection time-out")
            if self._pending_connect_failures:
                self._pending_connect_failures -= 1
                raise KazooTimeoutError("Connection time-out")
            return next(self._session_ids)

    def authenticate(self, scheme: str) -> None:
        """Accept or reject credentials of ``scheme`` for a connected session."""
        with self._lock:
            if scheme in self._rejected_schemes:
                raise AuthFailedError()

    def close_session(self, session_id: int) -> None:
        """End a session; its ephemeral nodes are removed."""
        with self._lock:
            owned = [
                path for path, node in self._tree.nodes.items()
                if node.ephemeral_owner == session_id
            ]
            for path in sorted(owned, key=len, reverse=True):
                parent = self._tree.nodes[parent_path(path)]
                del self._tree.nodes[path]
                parent.children.discard(path.rsplit("/", 1)[1])
                parent.cversion += 1

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------
    def execute(self, request: Callable[[_NodeTree], Any]) -> Any:
        """Run one request against the live tree under the service lock."""
        with self._lock:
            if self._pending_request_failures:
                raise self._pending_request_failures.popleft()
            return request(self._tree)

    def execute_multi(
        self,
        operations: Sequence[Callable[[_NodeTree], Any]],
    ) -> list[Any]:
        """
        Apply operations atomically.

        They run in order against a working copy of the tree, which
        replaces the live tree only if every operation succeeds.
        """
        with self._lock:
            if self._pending_request_failures:
                raise self._pending_request_failures.popleft()

            working = self._tree.clone()
            results: list[Any] = []
            for index, operation in enumerate(operations):
                try:
                    results.append(operation(working))
                except (NoNodeError, NodeExistsError, BadVersionError, NotEmptyError,
                        NoAuthError, InvalidACLError, NoChildrenForEphemeralsError) as e:
                    return (
                        [RolledBackError() for _ in range(index)]
                        + [e]
                        + [RuntimeInconsistency() for _ in range(len(operations) - index - 1)]
                    )

            self._tree = working
            return results

    def snapshot(self) -> dict[str, bytes]:
        """Path to payload for every node, for assertions in tests."""
        with self._lock:
            return {path: node.data for path, node in self._tree.nodes.items()}


# =============================================================================
# IN-MEMORY TRANSACTION
# =============================================================================
class InMemoryTransaction:
    """Buffered multi-operation request against an InMemoryCoordinationService."""

    __slots__ = ("_client", "_operations", "committed")

    def __init__(self, client: InMemoryClient) -> None:
        self._client = client
        self._operations: list[Callable[[_NodeTree], Any]] = []
        self.committed = False

    def _check_tx_state(self) -> None:
        if self.committed:
            raise ValueError("Transaction already committed")

    def create(
        self,
        path: str,
        value: bytes = b"",
        acl: Optional[Sequence[ACL]] = None,
        ephemeral: bool = False,
        sequence: bool = False,
    ) -> None:
        self._check_tx_state()
        _check_value(value)
        session_id, identities = self._client.session_id, self._client.identities
        self._operations.append(
            lambda tree: tree.create(path, value, acl, ephemeral, sequence, session_id, identities)
        )

    def delete(self, path: str, version: int = -1) -> None:
        self._check_tx_state()
        identities = self._client.identities
        self._operations.append(lambda tree: tree.delete(path, version, identities))

    def set_data(self, path: str, value: bytes, version: int = -1) -> None:
        self._check_tx_state()
        _check_value(value)
        identities = self._client.identities
        self._operations.append(lambda tree: tree.set_data(path, value, version, identities))

    def commit(self) -> list[Any]:
        self._check_tx_state()
        self._client._ensure_connected()
        self.committed = True
        return self._client.service.execute_multi(self._operations)

    def __enter__(self) -> InMemoryTransaction:
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, exc_tb: Any) -> None:
        if not exc_type:
            self.commit()


# =============================================================================
# IN-MEMORY CLIENT
# =============================================================================
class InMemoryClient:
    """
    Session to an InMemoryCoordinationService with the kazoo client surface.

    Requests on a client that is not started raise
    ``ConnectionClosedError``, as kazoo does. Credentials given to the
    constructor (and SASL, when ``sasl_options`` is passed) are checked
    only after start() has returned connected; a refusal moves the client
    to ``AUTH_FAILED`` and tells listeners the session is ``LOST``.
    add_auth() on a started client raises ``AuthFailedError`` directly.
    """

    def __init__(
        self,
        service: InMemoryCoordinationService,
        hosts: str = IN_MEMORY_ADDRESS,
        timeout: float = 10.0,
        auth_data: Optional[Sequence[tuple[str, str]]] = None,
        **kwargs: Any,
    ) -> None:
        self.service = service
        self.hosts = hosts
        self.timeout = timeout
        self.auth_data = list(auth_data or [])
        self.options = kwargs
        self.identities = _identities(self.auth_data)
        self.session_id: int = 0
        self.client_state: str = KeeperState.CLOSED
        self._listeners: list[Callable[[str], Any]] = []

    @property
    def connected(self) -> bool:
        return self.session_id != 0

    @property
    def client_id(self) -> Optional[tuple[int, bytes]]:
        return (self.session_id, b"") if self.connected else None

    def add_listener(self, listener: Callable[[str], Any]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[str], Any]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _transition(self, keeper_state: str, state: str) -> None:
        self.client_state = keeper_state
        for listener in list(self._listeners):
            listener(state)

    def start(self, timeout: float = 15) -> None:
        if self.connected:
            return
        self.session_id = self.service.open_session()
        self._transition(KeeperState.CONNECTED, KazooState.CONNECTED)

        handshake = [scheme for scheme, _ in self.auth_data]
        if self.options.get("sasl_options") is not None:
            handshake.insert(0, "sasl")
        for scheme in handshake:
            try:
                self.service.authenticate(scheme)
            except AuthFailedError:
                self._drop(KeeperState.AUTH_FAILED)
                return

    def add_auth(self, scheme: str, credential: str) -> None:
        self._ensure_connected()
        try:
            self.service.authenticate(scheme)
        except AuthFailedError:
            self._drop(KeeperState.AUTH_FAILED)
            raise
        self.auth_data.append((scheme, credential))
        self.identities = _identities(self.auth_data)

    def _drop(self, keeper_state: str) -> None:
        self.service.close_session(self.session_id)
        self.session_id = 0
        self._transition(keeper_state, KazooState.LOST)

    def stop(self) -> None:
        if self.connected:
            self._drop(KeeperState.CLOSED)

    def close(self) -> None:
        self.stop()

    def _ensure_connected(self) -> None:
        if self.client_state == KeeperState.AUTH_FAILED:
            raise AuthFailedError()
        if not self.connected:
            raise ConnectionClosedError("Connection has been closed")

    def _execute(self, request: Callable[[_NodeTree], Any]) -> Any:
        self._ensure_connected()
        return self.service.execute(request)

    def exists(self, path: str, watch: Any = None) -> Optional[ZnodeStat]:
        def request(tree: _NodeTree) -> Optional[ZnodeStat]:
            node = tree.nodes.get(path)
            return node.stat() if node is not None else None
        return self._execute(request)

    def get(self, path: str, watch: Any = None) -> tuple[bytes, ZnodeStat]:
        def request(tree: _NodeTree) -> tuple[bytes, ZnodeStat]:
            node = tree.lookup(path)
            tree.require(node, Permissions.READ, self.identities)
            return node.data, node.stat()
        return self._execute(request)

    def set(self, path: str, value: bytes, version: int = -1) -> ZnodeStat:
        return self._execute(lambda tree: tree.set_data(path, value, version, self.identities))

    def get_children(self, path: str, watch: Any = None) -> list[str]:
        def request(tree: _NodeTree) -> list[str]:
            node = tree.lookup(path)
            tree.require(node, Permissions.READ, self.identities)
            return list(node.children)
        return self._execute(request)

    def create(
        self,
        path: str,
        value: bytes = b"",
        acl: Optional[Sequence[ACL]] = None,
        ephemeral: bool = False,
        sequence: bool = False,
        makepath: bool = False,
    ) -> str:
        if makepath:
            head = parent_path(path)
            if head != ROOT_PATH and self.exists(head) is None:
                try:
                    self.create(head, b"", acl, makepath=True)
                except NodeExistsError:
                    pass
        return self._execute(
            lambda tree: tree.create(
                path, value, acl, ephemeral, sequence, self.session_id, self.identities
            )
        )

    def delete(self, path: str, version: int = -1, recursive: bool = False) -> bool:
        if recursive:
            for child in self.get_children(path):
                try:
                    self.delete(f"{path.rstrip('/')}/{child}", recursive=True)
                except NoNodeError:
                    pass
        return self._execute(lambda tree: tree.delete(path, version, self.identities))

    def get_acls(self, path: str) -> tuple[list[ACL], ZnodeStat]:
        def request(tree: _NodeTree) -> tuple[list[ACL], ZnodeStat]:
            node = tree.lookup(path)
            return list(node.acl), node.stat()
        return self._execute(request)

    def transaction(self) -> InMemoryTransaction:
        return InMemoryTransaction(self)
