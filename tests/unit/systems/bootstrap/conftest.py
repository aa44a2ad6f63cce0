"""
Shared fixtures for the bootstrap tests.

The shared user store is replaced by FakeUserStore, which records every
operation so tests can assert on what reached the database.
"""

from __future__ import annotations

from typing import Any

import pytest
from argon2 import PasswordHasher

from clusterauth.config import AuthDatabaseConfig, CertConfig, ClusterAuthConfig
from clusterauth.primitives.node import CredentialRecord


class FakeUserStore:
    def __init__(self) -> None:
        self.records: dict[str, CredentialRecord] = {}
        self.operations: list[tuple[str, str]] = []
        self.fail_writes = False
        self.closed = False

    async def delete(self, user_id: str) -> int:
        self.operations.append(("delete", user_id))
        return 1 if self.records.pop(user_id, None) is not None else 0

    async def insert(self, record: CredentialRecord) -> None:
        if self.fail_writes:
            raise ConnectionError("user store unreachable")
        if record.user_id in self.records:
            raise ValueError(f"duplicate user_id {record.user_id}")
        self.operations.append(("insert", record.user_id))
        self.records[record.user_id] = record

    async def supersede(self, record: CredentialRecord) -> None:
        await self.delete(record.user_id)
        await self.insert(record)

    async def close(self) -> None:
        self.closed = True

    @property
    def writes(self) -> list[tuple[str, str]]:
        return list(self.operations)


class RecordingFactory:
    """Store factory that hands out one FakeUserStore and remembers the URLs."""

    def __init__(self, store: FakeUserStore) -> None:
        self.store = store
        self.urls: list[str] = []
        self.error: Exception | None = None

    async def __call__(self, url: str, config: AuthDatabaseConfig) -> FakeUserStore:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.store


@pytest.fixture
def config(tmp_path: Any) -> ClusterAuthConfig:
    return ClusterAuthConfig(
        certs=CertConfig(directory=str(tmp_path / "certs"), key_size=1024),
        auth_db=AuthDatabaseConfig(target_timeout_s=2.0),
    )


@pytest.fixture
def hasher() -> PasswordHasher:
    # Cheap parameters; tests only care that the hash verifies.
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def user_store() -> FakeUserStore:
    return FakeUserStore()


@pytest.fixture
def store_factory(user_store: FakeUserStore) -> RecordingFactory:
    return RecordingFactory(user_store)
