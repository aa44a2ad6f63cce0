"""
clusterauth — Configuration System

All configuration is Pydantic-validated and loaded from:
1. default.yaml (defaults)
2. Environment variables (overrides)

Every tunable parameter of the bootstrap subsystem lives here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class CertConfig(BaseModel):
    """Where the signing keypair and the credential cache live on disk."""

    directory: str = "config/certs"
    public_key_file: str = "auth.public.pem"
    private_key_file: str = "auth.private.pem"
    credentials_file: str = "credentials.json"
    ignore_marker_file: str = ".gitignore"
    key_size: int = 2048
    public_exponent: int = 65537

    @property
    def path(self) -> Path:
        return Path(self.directory)

    @property
    def credentials_path(self) -> Path:
        return self.path / self.credentials_file


class AuthDatabaseConfig(BaseModel):
    # Node id whose config carries the shared database URL.
    owner_node_id: str = "auth_core"
    # Key looked up in the owner's `provided` then `local` config.
    url_key: str = "dbUrl"
    # Pre-resolved target. Empty means "wait for the owner node".
    url: str = ""
    # None disables the timeout; seal() still fails waiters fast.
    target_timeout_s: float | None = 30.0
    table: str = "users"
    pool_size: int = 5
    ssl: bool = False

    @field_validator("target_timeout_s")
    @classmethod
    def _positive_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("target_timeout_s must be positive")
        return v


class CredentialConfig(BaseModel):
    token_length: int = 256
    scope: str = "write_root"


class BootstrapConfig(BaseModel):
    key_consuming_types: list[str] = Field(default_factory=lambda: ["api", "auth"])
    credential_consuming_types: list[str] = Field(default_factory=lambda: ["core"])


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class ClusterAuthConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLUSTERAUTH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    certs: CertConfig = Field(default_factory=CertConfig)
    auth_db: AuthDatabaseConfig = Field(default_factory=AuthDatabaseConfig)
    credentials: CredentialConfig = Field(default_factory=CredentialConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: str | Path | None = None) -> ClusterAuthConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    if db_url := os.environ.get("CLUSTERAUTH_AUTH_DB__URL"):
        raw.setdefault("auth_db", {})["url"] = db_url
    if owner := os.environ.get("CLUSTERAUTH_AUTH_DB__OWNER_NODE_ID"):
        raw.setdefault("auth_db", {})["owner_node_id"] = owner
    if timeout := os.environ.get("CLUSTERAUTH_AUTH_DB__TARGET_TIMEOUT_S"):
        raw.setdefault("auth_db", {})["target_timeout_s"] = float(timeout)
    if cert_dir := os.environ.get("CLUSTERAUTH_CERTS__DIRECTORY"):
        raw.setdefault("certs", {})["directory"] = cert_dir
    if log_level := os.environ.get("CLUSTERAUTH_LOGGING__LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level
    if log_format := os.environ.get("CLUSTERAUTH_LOGGING__FORMAT"):
        raw.setdefault("logging", {})["format"] = log_format

    return ClusterAuthConfig(**raw)
