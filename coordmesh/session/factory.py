"""
Session Factories: Pluggable Client Construction

A SessionFactory turns the settings of a session into an unstarted
coordination client. The session manager calls it once per connection
attempt, so every attempt starts from a fresh client.

Implementations:
    KazooSessionFactory        → plain kazoo client (default)
    SecureKazooSessionFactory  → kazoo client with SASL/GSSAPI, driven by
                                 an explicit LoginContext
    InMemorySessionFactory     → client of an InMemoryCoordinationService

Secure login:
    The login context is an explicit value handed to the factory, never
    process-wide state, so sessions with different identities can live
    in one process. When SASL is required and no context is supplied, one
    is built from the configured Kerberos principal and keytab; if either
    is missing, the session connects without SASL and a warning is logged.
    The keytab is not passed to the client: kazoo hands only the SASL
    options to pure-sasl, and GSSAPI reads tickets from the credential
    cache. Obtaining them from the keytab (for example `kinit -kt`) is
    left to the host's Kerberos setup.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from kazoo.client import KazooClient

from coordmesh.core import constants as C
from coordmesh.core.config import CoordinationConfig
from coordmesh.core.types import AuthCredential
from coordmesh.reliability.retry import RetryPolicy
from coordmesh.storage.backends import InMemoryCoordinationService
from coordmesh.storage.protocols import CoordinationClient

logger = logging.getLogger(__name__)


# =============================================================================
# SESSION SETTINGS
# =============================================================================
@dataclass(frozen=True, slots=True)
class SessionSettings:
    """Everything needed to open one session to an ensemble."""
    address: str
    session_timeout_ms: int
    connect_timeout_ms: int
    retry_policy: RetryPolicy
    auth_infos: tuple[AuthCredential, ...] = ()

    @property
    def session_timeout_s(self) -> float:
        return self.session_timeout_ms / 1000

    @property
    def connect_timeout_s(self) -> float:
        return self.connect_timeout_ms / 1000

    def auth_data(self) -> list[tuple[str, str]]:
        return [credential.as_auth_data() for credential in self.auth_infos]


# =============================================================================
# LOGIN CONTEXT
# =============================================================================
def resolve_principal(principal: str, hostname: Optional[str] = None) -> str:
    """Substitute the ``_HOST`` placeholder with the (local) host name."""
    if C.HOST_PLACEHOLDER not in principal:
        return principal
    host = (hostname or socket.getfqdn()).lower()
    return principal.replace(C.HOST_PLACEHOLDER, host)


@dataclass(frozen=True, slots=True)
class LoginContext:
    """
    Secure-login identity for one session.

    ``server_principal`` names the service principal of the ensemble;
    only its primary component is used as the SASL service name.

    ``keytab`` records where tickets for ``principal`` come from. It does
    not reach sasl_options(); the credential cache must already hold a
    ticket for ``principal`` when the session connects.
    """
    principal: str
    keytab: str
    server_principal: Optional[str] = None

    @property
    def service(self) -> str:
        if not self.server_principal:
            return C.ZK_SASL_SERVICE_DEFAULT
        return self.server_principal.split("/", 1)[0].split("@", 1)[0]

    def sasl_options(self) -> dict[str, str]:
        """SASL options in the form the kazoo client accepts."""
        return {
            "mechanism": C.SASL_MECHANISM_GSSAPI,
            "service": self.service,
            "principal": self.principal,
        }


# =============================================================================
# FACTORY PROTOCOL
# =============================================================================
@runtime_checkable
class SessionFactory(Protocol):
    """Capability to build an unstarted coordination client."""

    def create_client(self, settings: SessionSettings) -> CoordinationClient:
        ...


# =============================================================================
# KAZOO FACTORIES
# =============================================================================
class KazooSessionFactory:
    """Builds plain ``KazooClient`` instances."""

    def client_options(self) -> dict[str, Any]:
        """Extra keyword arguments for KazooClient."""
        return {}

    def create_client(self, settings: SessionSettings) -> KazooClient:
        return KazooClient(
            hosts=settings.address,
            timeout=settings.session_timeout_s,
            connection_retry=settings.retry_policy.to_kazoo_retry(),
            command_retry=settings.retry_policy.to_kazoo_retry(),
            **self.client_options(),
        )


class SecureKazooSessionFactory(KazooSessionFactory):
    """
    Builds kazoo clients that authenticate with SASL/GSSAPI.

    Example:
        factory = SecureKazooSessionFactory(
            kerberos_principal="coordmesh/_HOST@EXAMPLE.COM",
            kerberos_keytab="/etc/security/keytabs/coordmesh.keytab",
            server_principal="zookeeper/zk1.example.com@EXAMPLE.COM",
        )
    """

    __slots__ = (
        "_sasl_enabled",
        "_server_principal",
        "_kerberos_principal",
        "_kerberos_keytab",
        "_login_context",
    )

    def __init__(
        self,
        kerberos_principal: Optional[str] = None,
        kerberos_keytab: Optional[str] = None,
        server_principal: Optional[str] = None,
        login_context: Optional[LoginContext] = None,
        sasl_enabled: bool = True,
    ) -> None:
        self._sasl_enabled = sasl_enabled
        self._server_principal = server_principal
        self._kerberos_principal = kerberos_principal
        self._kerberos_keytab = kerberos_keytab
        self._login_context = login_context

    def resolve_login_context(self) -> Optional[LoginContext]:
        """
        Login context to use, or None to connect without SASL.

        A supplied context wins; otherwise one is built from the Kerberos
        principal and keytab.
        """
        if not self._sasl_enabled:
            return None
        if self._server_principal:
            logger.info(
                "Configuring zookeeper to use %s as the server principal",
                self._server_principal,
            )
        if self._login_context is not None:
            return self._login_context
        if not self._kerberos_principal or not self._kerberos_keytab:
            logger.warning(
                "Secure login has not been configured since kerberos "
                "principal or keytab is not specified"
            )
            return None
        return LoginContext(
            principal=resolve_principal(self._kerberos_principal),
            keytab=self._kerberos_keytab,
            server_principal=self._server_principal,
        )

    def client_options(self) -> dict[str, Any]:
        context = self.resolve_login_context()
        if context is None:
            return {}
        return {"sasl_options": context.sasl_options()}


# =============================================================================
# IN-MEMORY FACTORY
# =============================================================================
class InMemorySessionFactory:
    """Builds clients of one InMemoryCoordinationService."""

    __slots__ = ("service", "sasl_options")

    def __init__(
        self,
        service: Optional[InMemoryCoordinationService] = None,
        sasl_options: Optional[dict[str, str]] = None,
    ) -> None:
        self.service = service or InMemoryCoordinationService()
        self.sasl_options = sasl_options

    def create_client(self, settings: SessionSettings) -> CoordinationClient:
        return self.service.client(
            hosts=settings.address,
            timeout=settings.session_timeout_s,
            sasl_options=self.sasl_options,
        )


def select_session_factory(config: CoordinationConfig) -> SessionFactory:
    """Default or secure kazoo factory, as the configuration asks."""
    if config.sasl_enabled:
        return SecureKazooSessionFactory(
            kerberos_principal=config.kerberos_principal,
            kerberos_keytab=config.kerberos_keytab,
            server_principal=config.server_principal,
        )
    return KazooSessionFactory()
