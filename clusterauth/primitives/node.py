"""
clusterauth — Node & Credential Primitives

Types exchanged between the node loader and the bootstrap subsystem:
  NodeType         — roles a node can play in the cluster
  NodeConfig       — per-node config; `local` is written, `provided` is read
  KeypairMaterial  — the cluster-wide signing keypair (PEM)
  CredentialPair   — plaintext key/secret kept in the local cache file
  CredentialRecord — the authoritative row in the shared user store
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from clusterauth.primitives.common import utc_now

# Keys written into NodeConfig.local
CERT_PUBLIC = "certPublic"
CERT_PRIVATE = "certPrivate"
USER_KEY = "userKey"
USER_SECRET = "userSecret"


class NodeType(str, enum.Enum):
    API = "api"
    AUTH = "auth"
    CORE = "core"


class NodeConfig(BaseModel):
    """
    Configuration handed over by the loader for a single node.

    `provided` holds operator overrides and is never written to.
    `local` holds defaults and receives injected keys and credentials.
    """

    local: dict[str, Any] = Field(default_factory=dict)
    provided: dict[str, Any] = Field(default_factory=dict)

    def lookup(self, key: str) -> Any:
        """Operator override first, then the node's own default."""
        value = self.provided.get(key)
        if value:
            return value
        return self.local.get(key)


class KeypairMaterial(BaseModel):
    model_config = ConfigDict(frozen=True)

    public_key: str
    private_key: str


class CredentialPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_key: str
    user_secret: str


class CredentialRecord(BaseModel):
    """A node's root-scoped identity as stored in the shared database."""

    user_id: str
    user_key: str
    hashed_secret: str
    last_ip: list[str] = Field(default_factory=list)
    scope: str = "write_root"
    refresh_token: str
    created_at: datetime = Field(default_factory=utc_now)
