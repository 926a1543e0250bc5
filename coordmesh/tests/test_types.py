"""
Unit Tests: Core Types and Errors

Tests:
    - Result monad
    - Path validation and prefix helpers
    - CreateMode flags and AuthCredential
    - Error codes, context and cause chaining
"""

import pytest
from kazoo.exceptions import BadVersionError

from coordmesh.core.errors import (
    ErrorCode,
    InvalidPath,
    MultiOpAborted,
    SessionConnectionError,
    VersionConflict,
)
from coordmesh.core.types import (
    AuthCredential,
    CreateMode,
    Err,
    Ok,
    Timestamp,
    ancestor_prefixes,
    check_path,
    node_path,
    parent_path,
)


class TestResult:
    """Tests for Ok/Err."""

    def test_ok(self):
        result = Ok(3)
        assert result.is_ok()
        assert result.unwrap() == 3
        assert result.map(lambda v: v * 2).unwrap() == 6

    def test_err(self):
        result = Err("boom")
        assert result.is_err()
        assert result.unwrap_or(7) == 7
        assert result.map(lambda v: v * 2) is result
        with pytest.raises(RuntimeError):
            result.unwrap()

    def test_flat_map_chains(self):
        result = Ok(2).flat_map(lambda v: Ok(v + 1) if v > 1 else Err("small"))
        assert result == Ok(3)


class TestPaths:
    """Tests for path validation and splitting."""

    @pytest.mark.parametrize("path", ["/", "/a", "/a/b", "/app/locks-1/x.y"])
    def test_valid(self, path):
        assert check_path(path) == Ok(path)

    @pytest.mark.parametrize(
        "path",
        ["", "a/b", "/a/", "/a//b", "/a/./b", "/a/..", "/a\x00b", None, 42],
    )
    def test_invalid(self, path):
        assert check_path(path).is_err()

    def test_ancestor_prefixes(self):
        assert ancestor_prefixes("/a/b/c") == ["/a", "/a/b", "/a/b/c"]
        assert ancestor_prefixes("/a") == ["/a"]

    def test_parent_path(self):
        assert parent_path("/a/b") == "/a"
        assert parent_path("/a") == "/"
        assert parent_path("/") == "/"

    def test_node_path_is_literal(self):
        assert node_path("/app", "x") == "/app/x"
        assert node_path("/", "x") == "//x"


class TestValueTypes:
    """Tests for CreateMode, AuthCredential and Timestamp."""

    def test_create_mode_flags(self):
        assert not CreateMode.PERSISTENT.is_ephemeral
        assert not CreateMode.PERSISTENT.is_sequential
        assert CreateMode.EPHEMERAL.is_ephemeral
        assert CreateMode.PERSISTENT_SEQUENTIAL.is_sequential
        assert CreateMode.EPHEMERAL_SEQUENTIAL.is_ephemeral
        assert CreateMode.EPHEMERAL_SEQUENTIAL.is_sequential

    def test_digest_credential(self):
        credential = AuthCredential.digest("alice", "secret")
        assert credential.scheme == "digest"
        assert credential.as_auth_data() == ("digest", "alice:secret")

    def test_credential_repr_is_redacted(self):
        assert "secret" not in repr(AuthCredential.digest("alice", "secret"))

    def test_timestamp_millis(self):
        ts = Timestamp.from_millis(1500)
        assert ts.millis == 1500
        assert ts.seconds == 1.5
        assert Timestamp.now() > ts


class TestErrors:
    """Tests for the error hierarchy."""

    def test_codes(self):
        assert InvalidPath.rejected("a", "relative").code is ErrorCode.NODE_INVALID_PATH
        assert SessionConnectionError.not_open("NEW").code is ErrorCode.SESSION_NOT_OPEN

    def test_cause_is_chained(self):
        cause = BadVersionError()
        error = VersionConflict.stale("/a", 3, cause=cause)
        assert error.__cause__ is cause
        assert error.context == {"path": "/a", "expected_version": 3}

    def test_with_context_keeps_type(self):
        error = InvalidPath.rejected("a", "relative").with_context(caller="test")
        assert isinstance(error, InvalidPath)
        assert error.context["caller"] == "test"
        assert error.context["reason"] == "relative"

    def test_to_dict(self):
        data = SessionConnectionError.retry_exhausted("zk:2181", 4).to_dict()
        assert data["code"] == "SESSION_RETRY_EXHAUSTED"
        assert data["context"] == {"address": "zk:2181", "attempts": 4}

    def test_errors_are_hashable(self):
        error = InvalidPath.rejected("a", "relative")
        assert error in {error}

    def test_multi_op_aborted_properties(self):
        error = MultiOpAborted.at(
            "/fence", 0, "create", "/fence", "node exists", marker_collision=True
        )
        assert error.marker_collision
        assert error.failed_index == 0
        assert "fencing marker already present" in error.message

        error = MultiOpAborted.at("/a/fence", 0, "create", "/a/fence", "node missing")
        assert not error.marker_collision
        assert error.message.endswith("node missing")

        error = MultiOpAborted.at("/fence", 2, "set_data", "/a", "version conflict")
        assert not error.marker_collision
        assert error.reason == "version conflict"
