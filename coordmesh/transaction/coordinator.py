"""
Fenced Transaction Coordinator: Atomic Multi-Op Batches Guarded by a Marker

Protocol:
    1. begin(marker) stages "create marker" as the first operation.
       Nothing is sent yet.
    2. enqueue_create / enqueue_delete / enqueue_set_data append further
       operations in call order.
    3. commit() appends "delete marker" and submits the whole batch as one
       ZooKeeper multi. Either every operation takes effect or none does.

Fencing:
    The marker's create is the first step and its delete the last step of
    the same atomic request. If the marker already exists when the batch
    is applied (another writer holds it mid-protocol), the create fails
    and the entire batch is rejected with MultiOpAborted. Staging is
    local and may take as long as it likes; writers only race at commit.

    Exclusion holds only among writers that agree to use the same marker
    path for the same logical resource. The coordinator cannot verify
    that; it is a contract on callers.

States:
    OPEN      → staging; enqueue_* and commit() allowed
    COMMITTED → batch applied (terminal)
    FAILED    → batch rejected or submission failed (terminal)

    commit() consumes the staged batch before submitting it, whatever the
    outcome. A FAILED coordinator cannot be recommitted; build a fresh one
    (after re-reading whatever state the conflict was about) to retry.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

from kazoo.exceptions import (
    BadVersionError,
    NoAuthError,
    NodeExistsError,
    NoNodeError,
    NotEmptyError,
    RolledBackError,
    RuntimeInconsistency,
)
from kazoo.security import ACL

from coordmesh.core import constants as C
from coordmesh.core.errors import InvalidPath, MultiOpAborted, TransactionStateError
from coordmesh.core.translation import translated
from coordmesh.core.types import CreateMode, check_path
from coordmesh.observability.logging import StructuredLogger
from coordmesh.transaction.operations import (
    CreateNode,
    DeleteNode,
    PendingOperation,
    SetData,
    describe,
)

if TYPE_CHECKING:
    from coordmesh.session.manager import Session

_FAILURE_REASONS: dict[type[BaseException], str] = {
    NodeExistsError: "node exists",
    NoNodeError: "node missing",
    BadVersionError: "version conflict",
    NotEmptyError: "node has children",
    NoAuthError: "not authorized",
}

# Placeholders the service reports for operations that did not fail themselves
_ROLLED_BACK = (RolledBackError, RuntimeInconsistency)


class TransactionState(Enum):
    """Fenced transaction lifecycle states."""
    OPEN = auto()
    COMMITTED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionState.OPEN


def _checked(path: str) -> str:
    result = check_path(path)
    if result.is_err():
        raise InvalidPath.rejected(path, result.error)
    return path


def _as_bytes(data: Union[bytes, str, None]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


class FencedTransactionCoordinator:
    """
    Owned, ordered batch of node mutations fenced by a marker path.

    Example:
        txn = FencedTransactionCoordinator.begin(session, "/app/fence")
        txn.enqueue_create("/app/data/x", b"v1")
        txn.enqueue_set_data("/app/data/index", b"x", expected_version=4)
        txn.commit()

    Instances are not shared between threads; each writer builds its own.
    """

    __slots__ = ("_session", "_marker_path", "_operations", "_state", "_log")

    def __init__(
        self,
        session: Session,
        marker_path: str,
        marker_acl: Optional[Sequence[ACL]] = None,
    ) -> None:
        self._session = session
        self._marker_path = _checked(marker_path)
        self._operations: Optional[list[PendingOperation]] = [
            CreateNode(
                path=marker_path,
                data=b"",
                acl=tuple(marker_acl) if marker_acl is not None else None,
                mode=CreateMode.PERSISTENT,
            )
        ]
        self._state = TransactionState.OPEN
        self._log = StructuredLogger(__name__).with_extra(marker_path=marker_path)

    @classmethod
    def begin(
        cls,
        session: Session,
        marker_path: str,
        marker_acl: Optional[Sequence[ACL]] = None,
    ) -> FencedTransactionCoordinator:
        """Open a transaction with the marker create already staged."""
        return cls(session, marker_path, marker_acl)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def marker_path(self) -> str:
        return self._marker_path

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def operations(self) -> tuple[PendingOperation, ...]:
        """Snapshot of the staged batch; empty once committed."""
        return tuple(self._operations or ())

    def _require_open(self, action: str) -> list[PendingOperation]:
        if self._state is not TransactionState.OPEN or self._operations is None:
            raise TransactionStateError.not_open(self._marker_path, self._state.name, action)
        return self._operations

    # -------------------------------------------------------------------------
    # Staging
    # -------------------------------------------------------------------------
    def _enqueue(self, operation: PendingOperation) -> FencedTransactionCoordinator:
        self._require_open(operation.kind).append(operation)
        self._log.debug("Staged operation", operation=describe(operation))
        return self

    def enqueue_create(
        self,
        path: str,
        data: Union[bytes, str, None] = b"",
        acl: Optional[Sequence[ACL]] = None,
        mode: CreateMode = CreateMode.PERSISTENT,
    ) -> FencedTransactionCoordinator:
        return self._enqueue(CreateNode(
            path=_checked(path),
            data=_as_bytes(data),
            acl=tuple(acl) if acl is not None else None,
            mode=mode,
        ))

    def enqueue_delete(
        self,
        path: str,
        expected_version: int = C.ANY_VERSION,
    ) -> FencedTransactionCoordinator:
        return self._enqueue(DeleteNode(path=_checked(path), expected_version=expected_version))

    def enqueue_set_data(
        self,
        path: str,
        data: Union[bytes, str, None],
        expected_version: int = C.ANY_VERSION,
    ) -> FencedTransactionCoordinator:
        return self._enqueue(SetData(
            path=_checked(path),
            data=_as_bytes(data),
            expected_version=expected_version,
        ))

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------
    def commit(self) -> tuple[Any, ...]:
        """
        Submit the staged batch, bracketed by the marker, atomically.

        Returns:
            Per-operation results for the operations the caller enqueued
            (created path, True for deletes, ZnodeStat for set_data).

        Raises:
            MultiOpAborted: an operation failed; nothing was applied
            SessionConnectionError: the session dropped during submission
            TransactionStateError: the transaction is not OPEN
        """
        staged = self._require_open("commit")
        batch = tuple(staged) + (DeleteNode(path=self._marker_path),)
        self._operations = None

        try:
            with translated("commit", self._marker_path):
                request = self._session.client.transaction()
                for operation in batch:
                    operation.stage(request)
                results = request.commit()
        except Exception:
            self._state = TransactionState.FAILED
            self._log.error("Transaction submission failed", operations=len(batch))
            raise

        for index, result in enumerate(results):
            if isinstance(result, BaseException) and not isinstance(result, _ROLLED_BACK):
                self._state = TransactionState.FAILED
                raise self._aborted(batch, index, result)

        self._state = TransactionState.COMMITTED
        self._log.info("Transaction committed", operations=len(batch) - 2)
        return tuple(results[1:-1])

    def _aborted(
        self,
        batch: Sequence[PendingOperation],
        index: int,
        error: BaseException,
    ) -> MultiOpAborted:
        operation = batch[index]
        reason = _FAILURE_REASONS.get(type(error), type(error).__name__)
        aborted = MultiOpAborted.at(
            marker_path=self._marker_path,
            failed_index=index,
            operation=operation.kind,
            path=operation.path,
            reason=reason,
            operations=[describe(op) for op in batch],
            cause=error,
            # Any other failure of the marker create (missing parent, denied) is no collision
            marker_collision=index == 0 and isinstance(error, NodeExistsError),
        )
        if aborted.marker_collision:
            self._log.warning("Fencing marker already present; batch rejected")
        else:
            self._log.info(
                "Transaction aborted",
                failed_index=index,
                operation=describe(operation),
                reason=reason,
            )
        return aborted

    def __repr__(self) -> str:
        return (
            f"FencedTransactionCoordinator(marker_path={self._marker_path!r}, "
            f"state={self._state.name}, staged={len(self._operations or ())})"
        )
