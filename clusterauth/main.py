"""
clusterauth — Command Line Entry Point

Runs the bootstrap outside of a node loader, e.g. to pre-provision a host:

    clusterauth keys
    clusterauth verify --type auth --id auth_api
    clusterauth verify --type core --id auth_core --db-url postgresql://...

Config is read from $CLUSTERAUTH_CONFIG_PATH (default config/default.yaml)
after loading a .env file, then overridden by the flags below.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import structlog
from dotenv import load_dotenv

from clusterauth.config import ClusterAuthConfig, load_config
from clusterauth.primitives.node import USER_SECRET, NodeConfig
from clusterauth.systems.bootstrap import BootstrapCoordinator, BootstrapError, KeyManager
from clusterauth.telemetry.logging import setup_logging

logger = structlog.get_logger("clusterauth.main")


async def run_keys(config: ClusterAuthConfig) -> int:
    manager = KeyManager(config.certs)
    await manager.ready()
    print(f"Signing keys in {config.certs.path.resolve()}")
    print(f"  fingerprint: {manager.fingerprint}")
    return 0


async def run_verify(config: ClusterAuthConfig, args: argparse.Namespace) -> int:
    node_config = NodeConfig()
    if args.db_url:
        node_config.provided[config.auth_db.url_key] = args.db_url
        config.auth_db.url = args.db_url
    if args.user_secret:
        node_config.provided[USER_SECRET] = args.user_secret

    coordinator = BootstrapCoordinator(config)
    try:
        if args.id != config.auth_db.owner_node_id:
            # Only one node per run; nobody else will supply the database URL.
            coordinator.seal()
        await coordinator.verify(args.type, args.id, node_config)
    finally:
        await coordinator.close()

    print(f"Node '{args.id}' ({args.type}) verified. Populated:")
    for key in sorted(node_config.local):
        print(f"  {key}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clusterauth",
        description="Provision cluster signing keys and node credentials",
    )
    parser.add_argument(
        "--config", default=os.environ.get("CLUSTERAUTH_CONFIG_PATH", "config/default.yaml"),
        help="YAML config file (default: config/default.yaml)"
    )
    parser.add_argument(
        "--cert-dir", default=None,
        help="Certificate directory (overrides certs.directory)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("keys", help="Ensure the signing keypair exists")

    verify = sub.add_parser("verify", help="Bootstrap a single node")
    verify.add_argument("--type", required=True, help="Node type (api, auth, core, ...)")
    verify.add_argument("--id", required=True, help="Node id (e.g. 'auth_core')")
    verify.add_argument(
        "--db-url", default=None,
        help="Shared database URL, as the owner node would provide it"
    )
    verify.add_argument(
        "--user-secret", default=None,
        help="Operator-provided secret; skips credential creation"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.cert_dir:
        config.certs.directory = args.cert_dir
    setup_logging(config.logging)

    try:
        if args.command == "keys":
            return asyncio.run(run_keys(config))
        return asyncio.run(run_verify(config, args))
    except BootstrapError as exc:
        logger.error("bootstrap_failed", command=args.command, error=str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
