"""
Recursive Path Initializer: Create Every Missing Ancestor of a Path

ensure("/a/b/c") creates "/a", then "/a/b", then "/a/b/c", skipping the
ones that already exist. Each step is an independent create, so the
operation is idempotent and safe to run concurrently from several
processes: a prefix created by someone else in the meantime counts as
present. It is not atomic; a failure part way leaves the shorter
prefixes in place.
"""

from __future__ import annotations

from typing import Optional, Sequence

from kazoo.security import ACL

from coordmesh.core.errors import InvalidPath
from coordmesh.core.types import PATH_SEPARATOR, ROOT_PATH, ancestor_prefixes, check_path
from coordmesh.observability.logging import StructuredLogger
from coordmesh.storage.path_store import PathStore


class RecursivePathInitializer:
    """
    Makes sure a node and all of its ancestors exist.

    Example:
        initializer = RecursivePathInitializer(store)
        initializer.ensure("/app/locks/jobs", acl=config.acl)
    """

    __slots__ = ("_store", "_log")

    def __init__(self, store: PathStore) -> None:
        self._store = store
        self._log = StructuredLogger(__name__)

    @property
    def store(self) -> PathStore:
        return self._store

    def ensure(self, path: str, acl: Optional[Sequence[ACL]] = None) -> list[str]:
        """
        Create ``path`` and any missing ancestors, all with ``acl``.

        A single trailing separator is ignored and the root is a no-op.

        Returns:
            The paths this call created, shortest first.

        Raises:
            InvalidPath: the path is relative or malformed
            NodeMissing: an ancestor vanished between steps
        """
        if isinstance(path, str) and path != ROOT_PATH and path.endswith(PATH_SEPARATOR):
            trimmed = path[:-1]
            if not trimmed.endswith(PATH_SEPARATOR):
                path = trimmed
        checked = check_path(path)
        if checked.is_err():
            raise InvalidPath.rejected(path, checked.error)
        if path == ROOT_PATH:
            return []

        created = [
            prefix for prefix in ancestor_prefixes(path)
            if self._store.create(prefix, b"", acl)
        ]
        if created:
            self._log.debug("Created missing path nodes", path=path, created_paths=created)
        return created
