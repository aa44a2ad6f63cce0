"""
clusterauth — Bootstrap System

Runs once per node before it starts: makes sure the cluster signing keypair
exists and that every core node holds root-scoped credentials that are
recorded in the shared user store.
"""

from clusterauth.systems.bootstrap.coordinator import BootstrapCoordinator, DatabaseTarget
from clusterauth.systems.bootstrap.credentials import CredentialStore
from clusterauth.systems.bootstrap.errors import (
    BootstrapError,
    CredentialCacheError,
    CredentialStoreUnavailable,
    DatabaseTargetUnavailable,
    KeyPersistenceError,
    KeysNotReadyError,
)
from clusterauth.systems.bootstrap.keys import KeyManager

__all__ = [
    "BootstrapCoordinator",
    "DatabaseTarget",
    "CredentialStore",
    "KeyManager",
    "BootstrapError",
    "CredentialCacheError",
    "CredentialStoreUnavailable",
    "DatabaseTargetUnavailable",
    "KeyPersistenceError",
    "KeysNotReadyError",
]
