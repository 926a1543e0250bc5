"""
Session module: Connection lifecycle and pluggable client factories.

Components:
- SessionManager: starts and owns the session to the ensemble
- Session: one connection with its retry policy and credentials
- SessionFactory: capability interface building coordination clients
- LoginContext: explicit secure-login identity for a session
"""

from coordmesh.session.factory import (
    InMemorySessionFactory,
    KazooSessionFactory,
    LoginContext,
    SecureKazooSessionFactory,
    SessionFactory,
    SessionSettings,
    resolve_principal,
    select_session_factory,
)
from coordmesh.session.manager import (
    Session,
    SessionManager,
    SessionState,
)

__all__ = [
    "InMemorySessionFactory",
    "KazooSessionFactory",
    "LoginContext",
    "SecureKazooSessionFactory",
    "SessionFactory",
    "SessionSettings",
    "resolve_principal",
    "select_session_factory",
    "Session",
    "SessionManager",
    "SessionState",
]
