"""
Path Store: Primitive CRUD over Hierarchical Nodes

Thin layer over an open Session:
- Node paths are validated up front (InvalidPath)
- "Already exists" on create and "absent" on delete/get are results,
  not errors
- Requests are issued under the session's retry policy
- kazoo exceptions are translated into coordination errors

No client-side locking: concurrent callers sharing a session rely on the
service for ordering. Fenced variants of create/delete/set_data run the
single mutation inside a FencedTransactionCoordinator.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence, Union

from kazoo.exceptions import BadVersionError, NodeExistsError, NoNodeError
from kazoo.protocol.states import ZnodeStat
from kazoo.security import ACL

from coordmesh.core import constants as C
from coordmesh.core.errors import InvalidPath, NodeMissing, VersionConflict
from coordmesh.core.translation import translated
from coordmesh.core.types import CreateMode, check_path, node_path
from coordmesh.storage.protocols import CoordinationClient
from coordmesh.transaction.coordinator import FencedTransactionCoordinator

if TYPE_CHECKING:
    from coordmesh.session.manager import Session

logger = logging.getLogger(__name__)

Payload = Union[bytes, str, None]


def _checked(path: str) -> str:
    result = check_path(path)
    if result.is_err():
        raise InvalidPath.rejected(path, result.error)
    return path


def _as_bytes(data: Payload) -> bytes:
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


class PathStore:
    """
    CRUD operations on the nodes of one session.

    Example:
        store = PathStore(session)
        store.create("/app")
        store.set_data("/app", b"ready")
        data, stat = store.get_data_with_stat("/app")
    """

    __slots__ = ("_session",)

    node_path = staticmethod(node_path)

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    @property
    def _client(self) -> CoordinationClient:
        return self._session.client

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------
    def exists(self, path: str) -> bool:
        with translated("exists", _checked(path)):
            return self._session.retry(self._client.exists, path) is not None

    def get_data(self, path: str) -> Optional[bytes]:
        """Payload of the node, or None if it does not exist."""
        found = self.get_data_with_stat(path)
        return found[0] if found is not None else None

    def get_data_with_stat(self, path: str) -> Optional[tuple[bytes, ZnodeStat]]:
        """Payload and metadata (version included), or None if absent."""
        with translated("get_data", _checked(path)):
            try:
                data, stat = self._session.retry(self._client.get, path)
            except NoNodeError:
                return None
        return (data or b""), stat

    def get_string_data(self, path: str) -> Optional[str]:
        """Payload decoded as UTF-8, or None if absent."""
        data = self.get_data(path)
        return data.decode("utf-8") if data is not None else None

    def get_children(self, path: str) -> frozenset[str]:
        """
        Names of the node's children (no ordering).

        Raises:
            NodeMissing: the node does not exist
        """
        with translated("get_children", _checked(path)):
            return frozenset(self._session.retry(self._client.get_children, path))

    def get_acl(self, path: str) -> list[ACL]:
        with translated("get_acl", _checked(path)):
            acl, _ = self._session.retry(self._client.get_acls, path)
        return list(acl)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------
    def set_data(
        self,
        path: str,
        data: Payload,
        expected_version: int = C.ANY_VERSION,
    ) -> ZnodeStat:
        """
        Replace the payload if the stored version matches.

        ``expected_version=-1`` matches any version. A str payload is
        encoded as UTF-8.

        Raises:
            VersionConflict: stored version differs; node unchanged
            NodeMissing: the node does not exist
        """
        with translated("set_data", _checked(path)):
            try:
                return self._session.retry(
                    self._client.set, path, _as_bytes(data), expected_version
                )
            except BadVersionError as e:
                raise VersionConflict.stale(path, expected_version, cause=e) from e

    def create(
        self,
        path: str,
        data: Payload = b"",
        acl: Optional[Sequence[ACL]] = None,
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> bool:
        """
        Create the node unless it already exists.

        Returns:
            True if this call created the node, False if it was already
            there (including when a concurrent creator won the race).
            Sequential modes always create a new node.

        Raises:
            NodeMissing: the parent does not exist
        """
        with translated("create", _checked(path)):
            if not mode.is_sequential and self.exists(path):
                return False
            try:
                created = self._session.retry(
                    self._client.create,
                    path,
                    _as_bytes(data),
                    list(acl) if acl is not None else None,
                    mode.is_ephemeral,
                    mode.is_sequential,
                )
            except NodeExistsError:
                logger.debug("Node %s created concurrently", path)
                return False
            except NoNodeError as e:
                raise NodeMissing.parent_of(path, cause=e) from e
        logger.debug("Created node %s", created)
        return True

    def delete(self, path: str) -> bool:
        """
        Delete the node and all of its descendants.

        Returns:
            True if the node existed and was deleted, False otherwise.
        """
        with translated("delete", _checked(path)):
            if not self.exists(path):
                return False
            try:
                self._session.retry(self._client.delete, path, recursive=True)
            except NoNodeError:
                return False
        logger.debug("Deleted node %s", path)
        return True

    # -------------------------------------------------------------------------
    # Fenced writes
    # -------------------------------------------------------------------------
    def create_transaction(
        self,
        marker_path: str,
        marker_acl: Optional[Sequence[ACL]] = None,
    ) -> FencedTransactionCoordinator:
        return FencedTransactionCoordinator.begin(self._session, marker_path, marker_acl)

    def safe_create(
        self,
        path: str,
        data: Payload,
        acl: Optional[Sequence[ACL]],
        mode: CreateMode,
        fencing_acl: Optional[Sequence[ACL]],
        fencing_path: str,
    ) -> bool:
        """Fenced create; skipped (returns False) if the node already exists."""
        if self.exists(path):
            return False
        transaction = self.create_transaction(fencing_path, fencing_acl)
        transaction.enqueue_create(path, data, acl, mode)
        transaction.commit()
        return True

    def safe_delete(
        self,
        path: str,
        fencing_acl: Optional[Sequence[ACL]],
        fencing_path: str,
    ) -> bool:
        """Fenced delete of a childless node; skipped (returns False) if absent."""
        if not self.exists(path):
            return False
        transaction = self.create_transaction(fencing_path, fencing_acl)
        transaction.enqueue_delete(path)
        transaction.commit()
        return True

    def safe_set_data(
        self,
        path: str,
        data: Payload,
        expected_version: int,
        fencing_acl: Optional[Sequence[ACL]],
        fencing_path: str,
    ) -> ZnodeStat:
        """Fenced, version-guarded set_data. Returns the node's new stat."""
        transaction = self.create_transaction(fencing_path, fencing_acl)
        transaction.enqueue_set_data(path, data, expected_version)
        (stat,) = transaction.commit()
        return stat
