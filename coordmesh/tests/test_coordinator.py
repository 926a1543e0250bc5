"""
Unit Tests: Fenced Transaction Coordinator

Tests:
    - Committed batches apply every operation and leave no marker
    - Failed batches apply nothing and report the failing operation
    - Marker collisions reject the batch
    - Concurrent writers on one marker: exactly one wins
    - Lifecycle (OPEN, COMMITTED, FAILED) and recommit rules
    - Fenced single-node helpers on PathStore
"""

import threading

import pytest
from kazoo.exceptions import ConnectionLoss, NodeExistsError
from kazoo.protocol.states import ZnodeStat
from kazoo.security import make_digest_acl

from coordmesh.core.errors import (
    InvalidPath,
    MultiOpAborted,
    SessionConnectionError,
    TransactionStateError,
)
from coordmesh.core.types import AuthCredential, CreateMode
from coordmesh.transaction.coordinator import (
    FencedTransactionCoordinator,
    TransactionState,
)
from coordmesh.transaction.operations import CreateNode, DeleteNode, SetData

MARKER = "/locks/fence"


@pytest.fixture
def layout(store):
    """/locks for markers and /data holding an index node at version 4."""
    store.create("/locks")
    store.create("/data")
    store.create("/data/index", b"i0")
    for version in range(4):
        store.set_data("/data/index", f"i{version + 1}", expected_version=version)
    return store


class TestStaging:
    """Tests for building a batch."""

    def test_begin_stages_marker(self, session):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        assert txn.state is TransactionState.OPEN
        assert txn.marker_path == MARKER
        assert txn.operations == (CreateNode(path=MARKER),)

    def test_enqueue_order(self, session):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_create("/data/x", b"v1").enqueue_set_data("/data/index", "x", 4)
        txn.enqueue_delete("/data/old", expected_version=2)
        assert txn.operations[1:] == (
            CreateNode(path="/data/x", data=b"v1"),
            SetData(path="/data/index", data=b"x", expected_version=4),
            DeleteNode(path="/data/old", expected_version=2),
        )

    def test_nothing_sent_before_commit(self, session, service):
        before = service.snapshot()
        txn = FencedTransactionCoordinator.begin(session, "/fence")
        txn.enqueue_create("/x")
        assert service.snapshot() == before

    def test_invalid_paths(self, session):
        with pytest.raises(InvalidPath):
            FencedTransactionCoordinator.begin(session, "fence")
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        with pytest.raises(InvalidPath):
            txn.enqueue_create("relative")
        with pytest.raises(InvalidPath):
            txn.enqueue_delete("/trailing/")


class TestCommit:
    """Tests for successful commits."""

    def test_scenario(self, layout, session):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_create("/data/x", b"v1")
        txn.enqueue_set_data("/data/index", b"x", expected_version=4)

        results = txn.commit()

        assert txn.state is TransactionState.COMMITTED
        assert results[0] == "/data/x"
        assert isinstance(results[1], ZnodeStat)
        assert results[1].version == 5
        assert layout.get_data("/data/x") == b"v1"
        assert layout.get_data("/data/index") == b"x"
        assert not layout.exists(MARKER)

    def test_successive_holders_of_one_marker(self, store, session):
        store.create("/data")
        first = FencedTransactionCoordinator.begin(session, "/lock")
        first.enqueue_create("/data/x", "v1")
        first.commit()
        assert store.get_string_data("/data/x") == "v1"
        assert not store.exists("/lock")

        second = FencedTransactionCoordinator.begin(session, "/lock")
        second.enqueue_create("/data/y", "v2")
        second.commit()
        assert store.get_string_data("/data/y") == "v2"
        assert not store.exists("/lock")

    def test_marker_only_batch(self, layout, session):
        assert FencedTransactionCoordinator.begin(session, MARKER).commit() == ()
        assert not layout.exists(MARKER)

    def test_sequential_create(self, layout, session):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_create("/data/item-", mode=CreateMode.PERSISTENT_SEQUENTIAL)
        (created,) = txn.commit()
        assert created.startswith("/data/item-")
        assert layout.exists(created)

    def test_marker_acl(self, layout, manager, session):
        txn = manager.create_transaction(MARKER)
        assert txn.operations[0].acl == tuple(manager.config.acl)
        txn.commit()
        assert not layout.exists(MARKER)


class TestAbort:
    """Tests for rejected batches."""

    def test_version_conflict_applies_nothing(self, layout, session, service):
        before = service.snapshot()
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_create("/data/x", b"v1")
        txn.enqueue_set_data("/data/index", b"x", expected_version=3)

        with pytest.raises(MultiOpAborted) as exc_info:
            txn.commit()

        error = exc_info.value
        assert error.failed_index == 2
        assert error.reason == "version conflict"
        assert error.context["path"] == "/data/index"
        assert not error.marker_collision
        assert txn.state is TransactionState.FAILED
        assert service.snapshot() == before

    def test_missing_node(self, layout, session):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_delete("/data/absent")
        with pytest.raises(MultiOpAborted) as exc_info:
            txn.commit()
        assert exc_info.value.failed_index == 1
        assert exc_info.value.reason == "node missing"
        assert not layout.exists(MARKER)

    def test_marker_collision(self, layout, session, service, caplog):
        layout.create(MARKER)
        before = service.snapshot()

        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_create("/data/x", b"v1")
        with caplog.at_level("WARNING", logger="coordmesh.transaction.coordinator"):
            with pytest.raises(MultiOpAborted) as exc_info:
                txn.commit()

        error = exc_info.value
        assert error.marker_collision
        assert error.failed_index == 0
        assert isinstance(error.__cause__, NodeExistsError)
        assert service.snapshot() == before
        assert "Fencing marker already present" in caplog.text

    def test_marker_parent_missing_is_not_collision(self, layout, session, service, caplog):
        before = service.snapshot()
        txn = FencedTransactionCoordinator.begin(session, "/nolocks/fence")
        txn.enqueue_create("/data/x", b"v1")
        with caplog.at_level("INFO", logger="coordmesh.transaction.coordinator"):
            with pytest.raises(MultiOpAborted) as exc_info:
                txn.commit()

        error = exc_info.value
        assert error.failed_index == 0
        assert error.reason == "node missing"
        assert not error.marker_collision
        assert "fencing marker already present" not in error.message
        assert "Fencing marker already present" not in caplog.text
        assert "Transaction aborted" in caplog.text
        assert service.snapshot() == before

    def test_marker_create_denied_is_not_collision(self, store, manager, session):
        store.create("/locked", acl=[make_digest_acl("owner", "pw", all=True)])
        manager.start(auth_infos=[AuthCredential.digest("intruder", "pw")])
        txn = manager.create_transaction("/locked/fence")
        with pytest.raises(MultiOpAborted) as exc_info:
            txn.commit()
        assert exc_info.value.failed_index == 0
        assert not exc_info.value.marker_collision

    def test_connection_loss(self, layout, session, service):
        before = service.snapshot()
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_create("/data/x", b"v1")
        service.fail_next_request(ConnectionLoss())

        with pytest.raises(SessionConnectionError):
            txn.commit()

        assert txn.state is TransactionState.FAILED
        assert service.snapshot() == before


class TestLifecycle:
    """Tests for the OPEN, COMMITTED and FAILED states."""

    def test_enqueue_after_commit(self, layout, session):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.commit()
        with pytest.raises(TransactionStateError):
            txn.enqueue_create("/data/late")
        assert txn.operations == ()

    def test_commit_twice(self, layout, session):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_create("/data/x")
        txn.commit()
        with pytest.raises(TransactionStateError):
            txn.commit()

    def test_recommit_after_failure(self, layout, session, service):
        txn = FencedTransactionCoordinator.begin(session, MARKER)
        txn.enqueue_set_data("/data/index", b"x", expected_version=0)
        with pytest.raises(MultiOpAborted):
            txn.commit()

        before = service.snapshot()
        with pytest.raises(TransactionStateError) as exc_info:
            txn.commit()
        assert exc_info.value.context["state"] == "FAILED"
        assert txn.operations == ()
        assert service.snapshot() == before

    def test_fresh_coordinator_after_failure(self, layout, session):
        failed = FencedTransactionCoordinator.begin(session, MARKER)
        failed.enqueue_set_data("/data/index", b"x", expected_version=0)
        with pytest.raises(MultiOpAborted):
            failed.commit()

        _, stat = layout.get_data_with_stat("/data/index")
        retry = FencedTransactionCoordinator.begin(session, MARKER)
        retry.enqueue_set_data("/data/index", b"x", expected_version=stat.version)
        retry.commit()
        assert layout.get_data("/data/index") == b"x"

    def test_terminal_states(self):
        assert not TransactionState.OPEN.is_terminal
        assert TransactionState.COMMITTED.is_terminal
        assert TransactionState.FAILED.is_terminal


class TestConcurrentWriters:
    """Tests for writers racing on one marker."""

    def test_exactly_one_wins(self, layout, manager, service):
        outcomes = {}
        barrier = threading.Barrier(2)

        def writer(name):
            txn = manager.create_transaction(MARKER)
            txn.enqueue_create("/data/x", name.encode())
            txn.enqueue_set_data("/data/owner", name)
            barrier.wait()
            try:
                txn.commit()
                outcomes[name] = "committed"
            except MultiOpAborted as e:
                outcomes[name] = e

        layout.create("/data/owner")
        threads = [threading.Thread(target=writer, args=(name,)) for name in ("a", "b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        winners = [name for name, outcome in outcomes.items() if outcome == "committed"]
        assert len(winners) == 1
        (loser,) = set(outcomes) - set(winners)
        assert isinstance(outcomes[loser], MultiOpAborted)

        winner = winners[0]
        assert layout.get_data("/data/x") == winner.encode()
        assert layout.get_string_data("/data/owner") == winner
        assert not layout.exists(MARKER)
        assert MARKER not in service.snapshot()

    def test_disjoint_batches_both_commit(self, layout, manager):
        errors = []

        def writer(name):
            txn = manager.create_transaction(MARKER)
            txn.enqueue_create(f"/data/{name}")
            try:
                txn.commit()
            except MultiOpAborted as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(name,)) for name in ("a", "b", "c")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert layout.get_children("/data") == {"index", "a", "b", "c"}


class TestFencedHelpers:
    """Tests for PathStore.safe_create / safe_delete / safe_set_data."""

    def test_safe_create(self, layout):
        assert layout.safe_create("/data/x", b"v1", None, CreateMode.PERSISTENT, None, MARKER)
        assert not layout.safe_create("/data/x", b"v2", None, CreateMode.PERSISTENT, None, MARKER)
        assert layout.get_data("/data/x") == b"v1"
        assert not layout.exists(MARKER)

    def test_safe_delete(self, layout):
        assert layout.safe_delete("/data/index", None, MARKER)
        assert not layout.safe_delete("/data/index", None, MARKER)
        assert not layout.exists("/data/index")

    def test_safe_set_data(self, layout):
        stat = layout.safe_set_data("/data/index", b"x", 4, None, MARKER)
        assert stat.version == 5
        with pytest.raises(MultiOpAborted):
            layout.safe_set_data("/data/index", b"y", 4, None, MARKER)
        assert layout.get_data("/data/index") == b"x"

    def test_safe_create_blocked_by_marker(self, layout):
        layout.create(MARKER)
        with pytest.raises(MultiOpAborted) as exc_info:
            layout.safe_create("/data/x", b"v1", None, CreateMode.PERSISTENT, None, MARKER)
        assert exc_info.value.marker_collision
        assert not layout.exists("/data/x")
