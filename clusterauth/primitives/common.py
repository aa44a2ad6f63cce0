"""
clusterauth — Common Primitives

Shared utilities used across the bootstrap subsystem.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone

TOKEN_ALPHABET = string.ascii_letters + string.digits


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def new_token(length: int = 256) -> str:
    """Cryptographically random alphanumeric token of `length` characters."""
    if length <= 0:
        raise ValueError("token length must be positive")
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
