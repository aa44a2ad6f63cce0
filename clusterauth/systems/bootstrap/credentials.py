"""
clusterauth — Credential Store

Per-node root credentials, kept in two tiers:

  credentials.json   plaintext {user_key, user_secret} per node id, so a
                     restarted node finds its credentials without the database
  shared user store  the authoritative CredentialRecord, secret Argon2-hashed

A cache hit is final: the shared store is not contacted at all. On a miss a
new pair is issued, the shared record is superseded (any stale record left
behind by a lost cache is removed) and the cache file is rewritten in full.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog
from argon2 import PasswordHasher
from pydantic import ValidationError

from clusterauth.primitives.common import new_token
from clusterauth.primitives.node import CredentialPair, CredentialRecord
from clusterauth.systems.bootstrap.errors import (
    BootstrapError,
    CredentialCacheError,
    CredentialStoreUnavailable,
)
from clusterauth.systems.bootstrap.files import ensure_directory, write_atomic

if TYPE_CHECKING:
    from pathlib import Path

    from clusterauth.clients.user_store import UserStore
    from clusterauth.config import CredentialConfig

logger = structlog.get_logger("clusterauth.systems.bootstrap.credentials")

StoreProvider = Callable[[], Awaitable["UserStore"]]

_CACHE_FILE_MODE = 0o600


class CredentialStore:
    """
    Lookup-or-create for node credentials.

    `store_provider` is awaited only on the creation path, so nodes whose
    credentials are cached never wait for the shared database.
    """

    def __init__(
        self,
        config: CredentialConfig,
        cache_path: Path,
        store_provider: StoreProvider,
        hasher: PasswordHasher | None = None,
    ) -> None:
        self._config = config
        self._cache_path = cache_path
        self._store_provider = store_provider
        self._hasher = hasher or PasswordHasher()
        self._logger = logger.bind(component="credential_store")

    async def resolve(self, node_id: str) -> CredentialPair:
        cached = self._load_cache().get(node_id)
        if cached is not None:
            self._logger.debug("credentials_cache_hit", node_id=node_id)
            return cached

        self._logger.info("credentials_not_found_creating", node_id=node_id)
        record, pair = await self._issue(node_id)

        try:
            store = await self._store_provider()
            await store.supersede(record)
        except BootstrapError:
            raise
        except Exception as exc:
            self._logger.error("credentials_store_write_failed", node_id=node_id, error=str(exc))
            raise CredentialStoreUnavailable(
                f"Could not record credentials for {node_id!r} in the shared store: {exc}"
            ) from exc

        # Re-read right before writing: no await between load and save, so
        # entries added by other nodes meanwhile are kept.
        cache = self._load_cache()
        cache[node_id] = pair
        self._save_cache(cache)

        self._logger.info("credentials_created", node_id=node_id, scope=record.scope)
        return pair

    # ─── Issuance ───────────────────────────────────────────────────

    async def _issue(self, node_id: str) -> tuple[CredentialRecord, CredentialPair]:
        length = self._config.token_length
        user_key = new_token(length)
        user_secret = new_token(length)

        loop = asyncio.get_running_loop()
        hashed = await loop.run_in_executor(None, self._hasher.hash, user_secret)

        record = CredentialRecord(
            user_id=node_id,
            user_key=user_key,
            hashed_secret=hashed,
            last_ip=[],
            scope=self._config.scope,
            refresh_token=user_key + new_token(length),
        )
        return record, CredentialPair(user_key=user_key, user_secret=user_secret)

    # ─── Cache File ─────────────────────────────────────────────────

    def _load_cache(self) -> dict[str, CredentialPair]:
        try:
            raw = json.loads(self._cache_path.read_text("utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            self._logger.warning(
                "credentials_cache_unreadable",
                path=str(self._cache_path),
                error=str(exc),
            )
            return {}

        if not isinstance(raw, dict):
            self._logger.warning("credentials_cache_malformed", path=str(self._cache_path))
            return {}

        cache: dict[str, CredentialPair] = {}
        for node_id, entry in raw.items():
            try:
                cache[node_id] = CredentialPair.model_validate(entry)
            except ValidationError:
                self._logger.warning("credentials_cache_entry_skipped", node_id=node_id)
        return cache

    def _save_cache(self, cache: dict[str, CredentialPair]) -> None:
        payload = {node_id: pair.model_dump() for node_id, pair in cache.items()}
        try:
            ensure_directory(self._cache_path.parent)
            write_atomic(
                self._cache_path,
                json.dumps(payload, indent=2) + "\n",
                mode=_CACHE_FILE_MODE,
            )
        except OSError as exc:
            self._logger.error(
                "credentials_cache_write_failed",
                path=str(self._cache_path),
                error=str(exc),
            )
            raise CredentialCacheError(
                f"Could not write credential cache {self._cache_path}: {exc}"
            ) from exc
