"""
Unit Tests: Recursive Path Initializer

Tests:
    - Missing ancestors are created in order
    - Idempotence and partial pre-existence
    - ACL propagation
    - Root, trailing separator and malformed paths
    - Debug logging of created nodes
"""

import logging
import threading

import pytest
from kazoo.security import make_acl, make_digest_acl

from coordmesh.core.errors import InvalidPath


class TestEnsure:
    """Tests for RecursivePathInitializer.ensure."""

    def test_creates_all_ancestors(self, initializer, service):
        created = initializer.ensure("/a/b/c")
        assert created == ["/a", "/a/b", "/a/b/c"]
        assert sorted(service.snapshot()) == ["/", "/a", "/a/b", "/a/b/c"]

    def test_idempotent(self, initializer, service):
        initializer.ensure("/a/b/c")
        before = service.snapshot()
        assert initializer.ensure("/a/b/c") == []
        assert service.snapshot() == before

    def test_partial_prefix_exists(self, initializer, store):
        store.create("/a", b"keep")
        assert initializer.ensure("/a/b") == ["/a/b"]
        assert store.get_data("/a") == b"keep"

    def test_acl_applied_to_created_nodes(self, initializer, store):
        acl = [
            make_digest_acl("app", "pw", all=True),
            make_acl("world", "anyone", read=True, create=True),
        ]
        store.create("/existing")
        initializer.ensure("/existing/x/y", acl=acl)
        assert store.get_acl("/existing/x") == acl
        assert store.get_acl("/existing/x/y") == acl
        assert store.get_acl("/existing") != acl

    def test_root_is_noop(self, initializer, service):
        before = service.snapshot()
        assert initializer.ensure("/") == []
        assert service.snapshot() == before

    def test_trailing_separator_ignored(self, initializer, store):
        assert initializer.ensure("/a/b/") == ["/a", "/a/b"]

    @pytest.mark.parametrize("path", ["a/b", "", "/a//b", "//", "/a/../b"])
    def test_malformed(self, initializer, service, path):
        with pytest.raises(InvalidPath):
            initializer.ensure(path)
        assert list(service.snapshot()) == ["/"]

    def test_concurrent_callers(self, initializer):
        errors = []
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            try:
                initializer.ensure("/shared/deep/path")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert initializer.store.exists("/shared/deep/path")

    def test_debug_logging_enabled(self, initializer, caplog):
        with caplog.at_level(logging.DEBUG, logger="coordmesh.storage.paths"):
            created = initializer.ensure("/a/b/c")

        assert created == ["/a", "/a/b", "/a/b/c"]
        (record,) = [r for r in caplog.records if r.name == "coordmesh.storage.paths"]
        assert record.created_paths == ["/a", "/a/b", "/a/b/c"]
        assert record.path == "/a/b/c"
        assert initializer.store.exists("/a/b/c")
