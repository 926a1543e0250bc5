"""
Unit Tests: Configuration

Tests:
    - Defaults
    - Environment loading and parse errors
    - Validation
"""

import pytest
from kazoo.security import OPEN_ACL_UNSAFE

from coordmesh.core import constants as C
from coordmesh.core.config import CoordinationConfig


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = CoordinationConfig()
        assert config.address is None
        assert config.num_retries == 1000
        assert config.session_timeout_ms == 10_000
        assert config.retry_interval_ms == 1000
        assert config.acl_spec == "world:anyone:rwcda"
        assert list(config.acl) == list(OPEN_ACL_UNSAFE)
        assert config.auth_infos == ()
        assert not config.sasl_enabled

    def test_defaults_validate(self):
        assert CoordinationConfig().validate().is_ok()


class TestFromEnv:
    """Tests for environment loading."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in (
            "ZK_ADDRESS", "ZK_NUM_RETRIES", "ZK_TIMEOUT_MS", "ZK_RETRY_INTERVAL_MS",
            "ZK_CONNECT_TIMEOUT_MS", "ZK_ACL", "ZK_AUTH", "ZK_SASL_ENABLED",
            "ZK_SERVER_PRINCIPAL", "ZK_KERBEROS_PRINCIPAL", "ZK_KERBEROS_KEYTAB",
            "LOG_LEVEL", "LOG_JSON",
        ):
            monkeypatch.delenv(f"{C.ENV_PREFIX}{name}", raising=False)

    def test_empty_environment(self):
        config = CoordinationConfig.from_env().unwrap()
        assert config == CoordinationConfig()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("COORDMESH_ZK_ADDRESS", "zk1:2181,zk2:2181")
        monkeypatch.setenv("COORDMESH_ZK_NUM_RETRIES", "3")
        monkeypatch.setenv("COORDMESH_ZK_TIMEOUT_MS", "4000")
        monkeypatch.setenv("COORDMESH_ZK_SASL_ENABLED", "true")
        monkeypatch.setenv("COORDMESH_ZK_KERBEROS_PRINCIPAL", "svc/_HOST@REALM")
        monkeypatch.setenv("COORDMESH_LOG_LEVEL", "debug")

        config = CoordinationConfig.from_env().unwrap()
        assert config.address == "zk1:2181,zk2:2181"
        assert config.num_retries == 3
        assert config.session_timeout_ms == 4000
        assert config.sasl_enabled
        assert config.kerberos_principal == "svc/_HOST@REALM"
        assert config.log_level == "DEBUG"

    def test_bad_number(self, monkeypatch):
        monkeypatch.setenv("COORDMESH_ZK_NUM_RETRIES", "many")
        result = CoordinationConfig.from_env()
        assert result.is_err()
        assert "Configuration error" in result.error


class TestValidate:
    """Tests for validation."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"num_retries": -1},
            {"session_timeout_ms": 0},
            {"retry_interval_ms": -5},
            {"connect_timeout_ms": 0},
        ],
    )
    def test_rejects(self, overrides):
        assert CoordinationConfig(**overrides).validate().is_err()

    def test_zero_retries_is_valid(self):
        assert CoordinationConfig(num_retries=0).validate().is_ok()
