"""
clusterauth — Bootstrap Coordinator

Entry point the node loader calls once per node, before starting it:

    coordinator = BootstrapCoordinator(config)
    for node in nodes:
        await coordinator.verify(node.type, node.id, node.config)
    coordinator.seal()

Per call:
  1. wait for the signing keypair (KeyManager)
  2. `api` / `auth` nodes get certPublic / certPrivate
  3. the owner node (`auth_core` by default) supplies the shared database URL
  4. `core` nodes without an operator-provided userSecret get userKey /
     userSecret from the CredentialStore

Everything shared between calls (key readiness, database target, the one
database connection, in-flight credential checks) is owned by the
coordinator instance rather than by module globals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from clusterauth.clients.user_store import connect_user_store
from clusterauth.primitives.node import (
    CERT_PRIVATE,
    CERT_PUBLIC,
    USER_KEY,
    USER_SECRET,
    CredentialPair,
    NodeConfig,
    NodeType,
)
from clusterauth.systems.bootstrap.credentials import CredentialStore
from clusterauth.systems.bootstrap.errors import (
    CredentialStoreUnavailable,
    DatabaseTargetUnavailable,
)
from clusterauth.systems.bootstrap.keys import KeyManager

if TYPE_CHECKING:
    from argon2 import PasswordHasher

    from clusterauth.clients.user_store import UserStore
    from clusterauth.config import AuthDatabaseConfig, ClusterAuthConfig

logger = structlog.get_logger("clusterauth.systems.bootstrap")

StoreFactory = Callable[[str, "AuthDatabaseConfig"], Awaitable["UserStore"]]


def _failed(future: asyncio.Future[Any]) -> bool:
    return future.done() and (future.cancelled() or future.exception() is not None)


class DatabaseTarget:
    """
    Single-assignment handle for the shared database URL.

    Resolved once, by the owner node or from configuration. Failing it wakes
    every waiter with DatabaseTargetUnavailable instead of leaving them hung.
    """

    def __init__(self, owner_node_id: str, url: str = "") -> None:
        self._owner_node_id = owner_node_id
        self._url: str | None = url or None
        self._error: str | None = None
        self._source: str | None = "config" if url else None
        self._event = asyncio.Event()
        if self._url:
            self._event.set()

    @property
    def owner_node_id(self) -> str:
        return self._owner_node_id

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def source(self) -> str | None:
        return self._source

    def resolve(self, url: str, source: str) -> None:
        if self.done:
            if url != self._url:
                logger.warning(
                    "database_target_already_resolved",
                    source=source,
                    resolved_by=self._source,
                    failed=self._error is not None,
                )
            return
        self._url = url
        self._source = source
        self._event.set()
        logger.info("database_target_resolved", source=source)

    def fail(self, reason: str) -> None:
        if self.done:
            return
        self._error = reason
        self._event.set()
        logger.error("database_target_failed", owner_node_id=self._owner_node_id, reason=reason)

    async def wait(self, timeout: float | None = None) -> str:
        """Return the URL once resolved. Raises DatabaseTargetUnavailable."""
        if not self.done:
            try:
                await asyncio.wait_for(self._event.wait(), timeout)
            except asyncio.TimeoutError:
                self.fail(
                    f"Node {self._owner_node_id!r} did not supply the database URL "
                    f"within {timeout}s"
                )
        if self._error is not None:
            raise DatabaseTargetUnavailable(self._error)
        if self._url is None:
            raise DatabaseTargetUnavailable("Database target set without a URL")
        return self._url


class BootstrapCoordinator:
    """
    Sequences key and credential provisioning for every loaded node.

    Construct one per process and pass it to the loader.
    """

    def __init__(
        self,
        config: ClusterAuthConfig,
        *,
        key_manager: KeyManager | None = None,
        target: DatabaseTarget | None = None,
        store_factory: StoreFactory | None = None,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self._config = config
        self._keys = key_manager or KeyManager(config.certs)
        self._target = target or DatabaseTarget(
            config.auth_db.owner_node_id,
            url=config.auth_db.url,
        )
        self._store_factory: StoreFactory = store_factory or connect_user_store
        self._credentials = CredentialStore(
            config.credentials,
            config.certs.credentials_path,
            self._user_store,
            hasher=hasher,
        )

        self._store: asyncio.Future[UserStore] | None = None
        self._checks: dict[str, asyncio.Future[CredentialPair]] = {}
        self._verified: list[str] = []
        self._sealed = False
        self._logger = logger.bind(component="bootstrap_coordinator")

    # ─── Properties ─────────────────────────────────────────────────

    @property
    def key_manager(self) -> KeyManager:
        return self._keys

    @property
    def target(self) -> DatabaseTarget:
        return self._target

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "keys_ready": self._keys.is_ready,
            "target_resolved": self._target.done,
            "target_source": self._target.source,
            "store_connected": self._store is not None and self._store.done() and not _failed(self._store),
            "verified_nodes": list(self._verified),
            "credential_checks": len(self._checks),
            "sealed": self._sealed,
        }

    # ─── Verify ─────────────────────────────────────────────────────

    async def verify(self, node_type: NodeType | str, node_id: str, node_config: NodeConfig) -> None:
        """
        Populate `node_config.local` with the keys and credentials the node
        needs. Returns once every applicable write is done.
        """
        kind = getattr(node_type, "value", node_type)
        bootstrap = self._config.bootstrap

        material = await self._keys.ready()

        if kind in bootstrap.key_consuming_types:
            node_config.local[CERT_PUBLIC] = material.public_key
            node_config.local[CERT_PRIVATE] = material.private_key

        if kind in bootstrap.credential_consuming_types:
            if node_id == self._target.owner_node_id:
                self._resolve_target(node_id, node_config)

            if node_config.provided.get(USER_SECRET):
                self._logger.debug("credentials_provided", node_id=node_id)
            else:
                pair = await self._check_credentials(node_id)
                node_config.local[USER_KEY] = pair.user_key
                node_config.local[USER_SECRET] = pair.user_secret

        self._verified.append(node_id)
        self._logger.info("node_verified", node_id=node_id, node_type=kind)

    async def wait_for(self, node_id: str) -> CredentialPair:
        """Await the credential check started for `node_id`."""
        check = self._checks.get(node_id)
        if check is None:
            raise KeyError(f"No credential check started for {node_id!r}")
        return await asyncio.shield(check)

    def seal(self) -> None:
        """
        Declare that every node descriptor has been passed to verify().

        If the owner node never showed up, anyone still waiting for the
        database URL fails now instead of hanging.
        """
        self._sealed = True
        if not self._target.done:
            auth_db = self._config.auth_db
            self._target.fail(
                f"Loading finished without node {auth_db.owner_node_id!r} "
                f"supplying {auth_db.url_key!r}"
            )

    async def close(self) -> None:
        if self._store is not None and self._store.done() and not _failed(self._store):
            await self._store.result().close()
        self._store = None

    # ─── Internals ──────────────────────────────────────────────────

    def _resolve_target(self, node_id: str, node_config: NodeConfig) -> None:
        url_key = self._config.auth_db.url_key
        url = node_config.lookup(url_key)
        if not url:
            # Already resolved from config, or by an earlier verify of this node.
            if not self._target.done:
                self._target.fail(f"Node {node_id!r} carries no {url_key!r}")
            return
        self._target.resolve(str(url), source=node_id)

    async def _check_credentials(self, node_id: str) -> CredentialPair:
        check = self._checks.get(node_id)
        if check is None or _failed(check):
            check = asyncio.ensure_future(self._credentials.resolve(node_id))
            self._checks[node_id] = check
        return await asyncio.shield(check)

    async def _user_store(self) -> UserStore:
        if self._store is None or _failed(self._store):
            self._store = asyncio.ensure_future(self._connect())
        return await asyncio.shield(self._store)

    async def _connect(self) -> UserStore:
        auth_db = self._config.auth_db
        url = await self._target.wait(auth_db.target_timeout_s)
        try:
            store = await self._store_factory(url, auth_db)
        except Exception as exc:
            self._logger.error("user_store_connect_failed", error=str(exc))
            raise CredentialStoreUnavailable(f"Could not connect to the shared user store: {exc}") from exc
        self._logger.info("user_store_ready", source=self._target.source)
        return store
