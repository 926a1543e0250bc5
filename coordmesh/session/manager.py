"""
Session Manager: Lifecycle of the Connection to the Ensemble

States:
    NEW    → Constructed, not yet connected
    OPEN   → Connected; requests may be issued
    CLOSED → Final state; the underlying client is stopped

Connection:
    Each attempt builds a fresh client through the SessionFactory and
    waits up to the connect timeout. Connect timeouts and connection
    loss are retried per the RetryPolicy (fixed count, fixed interval);
    exhausting the budget raises SessionConnectionError.

Authentication:
    Digest credentials are applied with add_auth() once the client is
    connected, which answers synchronously. SASL is negotiated by the
    client right after CONNECTED; a refusal shows up only as a move to
    AUTH_FAILED, so a state listener watches for it during the attempt.
    Rejected credentials raise AuthFailure and are never retried.

Sharing:
    One Session may be used by many threads. It holds no client-side
    locks; ordering and atomicity come from the service.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum, auto
from typing import Any, Callable, Optional, Sequence, TypeVar

from kazoo.exceptions import (
    AuthFailedError,
    ConnectionLoss,
    KazooException,
    OperationTimeoutError,
)
from kazoo.handlers.threading import KazooTimeoutError
from kazoo.protocol.states import KeeperState
from kazoo.security import ACL

from coordmesh.core.config import CoordinationConfig
from coordmesh.core.errors import AuthFailure, ConfigMissing, SessionConnectionError
from coordmesh.core.types import ROOT_PATH, AuthCredential
from coordmesh.observability.logging import StructuredLogger
from coordmesh.reliability.retry import RetryPolicy, call_with_retry
from coordmesh.session.factory import (
    SessionFactory,
    SessionSettings,
    select_session_factory,
)
from coordmesh.storage.path_store import PathStore
from coordmesh.storage.paths import RecursivePathInitializer
from coordmesh.storage.protocols import CoordinationClient
from coordmesh.transaction.coordinator import FencedTransactionCoordinator

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures worth another connection attempt
CONNECT_RETRYABLE: tuple[type[BaseException], ...] = (
    KazooTimeoutError,
    ConnectionLoss,
    OperationTimeoutError,
)

# Failures worth re-issuing a request on a live session
REQUEST_RETRYABLE: tuple[type[BaseException], ...] = (
    ConnectionLoss,
    OperationTimeoutError,
)


class SessionState(Enum):
    """Session lifecycle states."""
    NEW = auto()
    OPEN = auto()
    CLOSED = auto()


# =============================================================================
# SESSION
# =============================================================================
class Session:
    """
    An open (or openable) session to a coordination service ensemble.

    Created by SessionManager.start(); close() is idempotent and safe in
    any state.
    """

    __slots__ = ("_settings", "_factory", "_client", "_state", "_log")

    def __init__(self, settings: SessionSettings, factory: SessionFactory) -> None:
        self._settings = settings
        self._factory = factory
        self._client: Optional[CoordinationClient] = None
        self._state = SessionState.NEW
        self._log = StructuredLogger(__name__).with_extra(ensemble=settings.address)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def settings(self) -> SessionSettings:
        return self._settings

    @property
    def address(self) -> str:
        return self._settings.address

    @property
    def session_timeout_ms(self) -> int:
        return self._settings.session_timeout_ms

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._settings.retry_policy

    @property
    def auth_infos(self) -> tuple[AuthCredential, ...]:
        return self._settings.auth_infos

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SessionState.OPEN

    @property
    def client(self) -> CoordinationClient:
        """The connected client. Raises if the session is not open."""
        if self._state is not SessionState.OPEN or self._client is None:
            raise SessionConnectionError.not_open(self._state.name)
        return self._client

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    def open(self) -> Session:
        """
        Connect, retrying transient failures.

        Raises:
            SessionConnectionError: retry budget exhausted, or session closed
            AuthFailure: credentials rejected by the ensemble
        """
        if self._state is SessionState.OPEN:
            return self
        if self._state is SessionState.CLOSED:
            raise SessionConnectionError.not_open(self._state.name)

        policy = self._settings.retry_policy
        self._log.info(
            "Connecting",
            session_timeout_ms=self._settings.session_timeout_ms,
            max_retries=policy.max_retries,
            retry_interval_ms=policy.interval_ms,
        )
        try:
            # Attempt records from the retry loop carry the ensemble too
            with StructuredLogger.context(ensemble=self._settings.address):
                result = call_with_retry(self._connect_once, policy, CONNECT_RETRYABLE)
        except AuthFailedError as e:
            self._log.error("Authentication rejected by ensemble")
            raise AuthFailure.rejected(
                self._settings.address,
                [credential.scheme for credential in self._settings.auth_infos],
                cause=e,
            ) from e

        if result.is_err():
            failure = result.error
            self._log.error("Connection retries exhausted", attempts=failure.attempts)
            raise SessionConnectionError.retry_exhausted(
                self._settings.address,
                failure.attempts,
                cause=failure.last_error,
            )

        self._client = result.unwrap()
        self._state = SessionState.OPEN
        self._log.info("Session open")
        return self

    def _connect_once(self) -> CoordinationClient:
        client = self._factory.create_client(self._settings)
        rejected = threading.Event()

        def watch_auth(state: str) -> None:
            if client.client_state == KeeperState.AUTH_FAILED:
                rejected.set()

        client.add_listener(watch_auth)
        try:
            client.start(timeout=self._settings.connect_timeout_s)
            # SASL runs after CONNECTED; the first reply comes only once it is done
            client.exists(ROOT_PATH)
            for scheme, credential in self._settings.auth_data():
                client.add_auth(scheme, credential)
            if rejected.is_set():
                raise AuthFailedError()
        except (KazooTimeoutError, KazooException):
            _discard(client)
            if rejected.is_set():
                raise AuthFailedError() from None
            raise
        except Exception:
            _discard(client)
            raise
        finally:
            client.remove_listener(watch_auth)
        return client

    def close(self) -> None:
        """Stop the client. Idempotent; safe on a session never opened."""
        if self._state is SessionState.CLOSED:
            return
        client, self._client = self._client, None
        self._state = SessionState.CLOSED
        if client is not None:
            _discard(client)
            self._log.info("Session closed")

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------
    def retry(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func(*args, **kwargs)`` under the session's retry policy.

        Only connection loss and request timeouts are retried. Use for
        requests that are safe to re-issue.
        """
        result = call_with_retry(
            lambda: func(*args, **kwargs),
            self._settings.retry_policy,
            REQUEST_RETRYABLE,
        )
        if result.is_err():
            raise SessionConnectionError.connection_lost(
                getattr(func, "__name__", "request"),
                path=args[0] if args and isinstance(args[0], str) else None,
                cause=result.error.last_error,
            )
        return result.unwrap()

    def __enter__(self) -> Session:
        return self.open()

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Session(address={self.address!r}, state={self._state.name})"


def _discard(client: CoordinationClient) -> None:
    """Stop and close a client, logging (not raising) cleanup failures."""
    try:
        client.stop()
        client.close()
    except KazooException as e:
        logger.debug("Ignoring error while discarding client: %s", e)


# =============================================================================
# SESSION MANAGER
# =============================================================================
class SessionManager:
    """
    Owns the session to the coordination service.

    Example:
        config = CoordinationConfig.from_env().unwrap()
        with SessionManager(config) as manager:
            manager.start()
            store = manager.path_store()
            store.create("/app")
    """

    __slots__ = ("_config", "_factory", "_session")

    def __init__(
        self,
        config: Optional[CoordinationConfig] = None,
        factory: Optional[SessionFactory] = None,
    ) -> None:
        self._config = config or CoordinationConfig()
        self._factory = factory or select_session_factory(self._config)
        self._session: Optional[Session] = None

    @property
    def config(self) -> CoordinationConfig:
        return self._config

    @property
    def factory(self) -> SessionFactory:
        return self._factory

    @property
    def session(self) -> Session:
        """The current session. Raises if start() has not succeeded."""
        if self._session is None:
            raise SessionConnectionError.not_open(SessionState.NEW.name)
        return self._session

    def start(
        self,
        address: Optional[str] = None,
        session_timeout_ms: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        auth_infos: Sequence[AuthCredential] = (),
    ) -> Session:
        """
        Open a session; arguments left out come from the configuration.

        Credentials from the configuration are appended to ``auth_infos``.

        Raises:
            ConfigMissing: no ensemble address
            SessionConnectionError: connection retry budget exhausted
            AuthFailure: credentials rejected
        """
        address = address if address is not None else self._config.address
        if not address:
            raise ConfigMissing.key("zookeeper address")

        settings = SessionSettings(
            address=address,
            session_timeout_ms=session_timeout_ms or self._config.session_timeout_ms,
            connect_timeout_ms=self._config.connect_timeout_ms,
            retry_policy=retry_policy or RetryPolicy(
                max_retries=self._config.num_retries,
                interval_ms=self._config.retry_interval_ms,
            ),
            auth_infos=tuple(auth_infos) + tuple(self._config.auth_infos),
        )

        if self._session is not None:
            self._session.close()
        self._session = Session(settings, self._factory).open()
        return self._session

    def close(self) -> None:
        """Close the current session. Idempotent; safe before start()."""
        if self._session is not None:
            self._session.close()

    def path_store(self) -> PathStore:
        return PathStore(self.session)

    def path_initializer(self) -> RecursivePathInitializer:
        return RecursivePathInitializer(self.path_store())

    def create_transaction(
        self,
        marker_path: str,
        marker_acl: Optional[Sequence[ACL]] = None,
    ) -> FencedTransactionCoordinator:
        """Open a fenced transaction on the current session."""
        return FencedTransactionCoordinator.begin(
            self.session,
            marker_path,
            marker_acl if marker_acl is not None else self._config.acl,
        )

    def __enter__(self) -> SessionManager:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
