"""
Shared fixtures: an in-memory ensemble and a session opened against it.
"""

import pytest

from coordmesh.core.config import CoordinationConfig
from coordmesh.reliability.retry import RetryPolicy
from coordmesh.session.factory import InMemorySessionFactory
from coordmesh.session.manager import SessionManager
from coordmesh.storage.backends import IN_MEMORY_ADDRESS, InMemoryCoordinationService
from coordmesh.storage.path_store import PathStore
from coordmesh.storage.paths import RecursivePathInitializer

FAST_RETRY = RetryPolicy(max_retries=2, interval_ms=0)


@pytest.fixture
def service():
    return InMemoryCoordinationService()


@pytest.fixture
def factory(service):
    return InMemorySessionFactory(service)


@pytest.fixture
def manager(factory):
    config = CoordinationConfig(
        address=IN_MEMORY_ADDRESS,
        num_retries=FAST_RETRY.max_retries,
        retry_interval_ms=FAST_RETRY.interval_ms,
    )
    with SessionManager(config, factory) as manager:
        yield manager


@pytest.fixture
def session(manager):
    return manager.start()


@pytest.fixture
def store(session):
    return PathStore(session)


@pytest.fixture
def initializer(store):
    return RecursivePathInitializer(store)
