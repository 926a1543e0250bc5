"""
Configuration Management for the Coordination Layer

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after construction
- Fail-fast on invalid configuration
- ACL and auth specifications are carried as raw strings; turning them
  into structured ACLs/credentials is the caller's job, and the parsed
  values are passed in through ``acl`` and ``auth_infos``
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from kazoo.security import ACL, OPEN_ACL_UNSAFE

from coordmesh.core import constants as C
from coordmesh.core.types import AuthCredential, Err, Ok, Result

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"{C.ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class CoordinationConfig:
    """Root configuration for a coordination session."""

    address: Optional[str] = None
    num_retries: int = C.ZK_NUM_RETRIES_DEFAULT
    session_timeout_ms: int = C.ZK_TIMEOUT_MS_DEFAULT
    retry_interval_ms: int = C.ZK_RETRY_INTERVAL_MS_DEFAULT
    connect_timeout_ms: int = C.ZK_CONNECT_TIMEOUT_MS_DEFAULT

    # Raw specifications, parsed externally
    acl_spec: str = C.ZK_ACL_DEFAULT
    auth_spec: str = ""

    # Parsed values
    acl: tuple[ACL, ...] = field(default_factory=lambda: tuple(OPEN_ACL_UNSAFE))
    auth_infos: tuple[AuthCredential, ...] = ()

    # Secure login
    sasl_enabled: bool = False
    server_principal: Optional[str] = None
    kerberos_principal: Optional[str] = None
    kerberos_keytab: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> Result[CoordinationConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with COORDMESH_.
        Example: COORDMESH_ZK_ADDRESS, COORDMESH_ZK_NUM_RETRIES
        """
        try:
            return Ok(cls(
                address=_env("ZK_ADDRESS") or None,
                num_retries=int(_env("ZK_NUM_RETRIES", str(C.ZK_NUM_RETRIES_DEFAULT))),
                session_timeout_ms=int(_env("ZK_TIMEOUT_MS", str(C.ZK_TIMEOUT_MS_DEFAULT))),
                retry_interval_ms=int(
                    _env("ZK_RETRY_INTERVAL_MS", str(C.ZK_RETRY_INTERVAL_MS_DEFAULT))
                ),
                connect_timeout_ms=int(
                    _env("ZK_CONNECT_TIMEOUT_MS", str(C.ZK_CONNECT_TIMEOUT_MS_DEFAULT))
                ),
                acl_spec=_env("ZK_ACL", C.ZK_ACL_DEFAULT),
                auth_spec=_env("ZK_AUTH", ""),
                sasl_enabled=_env_bool("ZK_SASL_ENABLED", False),
                server_principal=_env("ZK_SERVER_PRINCIPAL") or None,
                kerberos_principal=_env("ZK_KERBEROS_PRINCIPAL") or None,
                kerberos_keytab=_env("ZK_KERBEROS_KEYTAB") or None,
                log_level=_env("LOG_LEVEL", "INFO").upper(),
                log_json=_env_bool("LOG_JSON", True),
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.num_retries < 0:
            return Err("num_retries must be >= 0")
        if self.session_timeout_ms <= 0:
            return Err("session_timeout_ms must be > 0")
        if self.retry_interval_ms < 0:
            return Err("retry_interval_ms must be >= 0")
        if self.connect_timeout_ms <= 0:
            return Err("connect_timeout_ms must be > 0")
        return Ok(None)
