#!/usr/bin/env python3
"""
Coordmesh demo: session, path initialization, and a fenced transaction.

Usage:
    python -m coordmesh --in-memory

    # Against a real ensemble
    COORDMESH_ZK_ADDRESS=zk1:2181,zk2:2181 python -m coordmesh
"""

from __future__ import annotations

import argparse
import sys

from coordmesh.core.config import CoordinationConfig
from coordmesh.core.errors import CoordinationError, MultiOpAborted
from coordmesh.observability.logging import LogLevel, setup_logging
from coordmesh.session.factory import InMemorySessionFactory
from coordmesh.session.manager import SessionManager
from coordmesh.storage.backends import IN_MEMORY_ADDRESS


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="coordmesh", description=__doc__.splitlines()[1])
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="use the in-process coordination service instead of an ensemble",
    )
    parser.add_argument("--root", default="/coordmesh-demo", help="root node for the demo")
    return parser.parse_args(argv)


def demo(manager: SessionManager, root: str) -> None:
    """Walk through the main operations against an open session."""
    store = manager.path_store()
    initializer = manager.path_initializer()
    acl = manager.config.acl

    created = initializer.ensure(f"{root}/data", acl=acl)
    print(f"1. Ensured {root}/data (created: {created or 'nothing'})")

    store.create(f"{root}/data/index", b"", acl)
    _, stat = store.get_data_with_stat(f"{root}/data/index")
    print(f"2. Index node at version {stat.version}")

    marker = f"{root}/fence"
    txn = manager.create_transaction(marker)
    txn.enqueue_create(f"{root}/data/x", b"v1", acl)
    txn.enqueue_set_data(f"{root}/data/index", b"x", expected_version=stat.version)
    txn.commit()
    print(f"3. Fenced batch committed; children: {sorted(store.get_children(f'{root}/data'))}")

    stale = manager.create_transaction(marker)
    stale.enqueue_set_data(f"{root}/data/index", b"y", expected_version=stat.version)
    try:
        stale.commit()
    except MultiOpAborted as e:
        print(f"4. Stale batch rejected at operation {e.failed_index}: {e.reason}")

    print(f"5. Marker left behind: {store.exists(marker)}")
    store.delete(root)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config_result = CoordinationConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        return 1
    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        return 1

    setup_logging(LogLevel.parse(config.log_level), json_output=config.log_json)

    factory = InMemorySessionFactory() if args.in_memory else None
    address = IN_MEMORY_ADDRESS if args.in_memory else None

    try:
        with SessionManager(config, factory) as manager:
            manager.start(address=address)
            demo(manager, args.root)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except CoordinationError as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
