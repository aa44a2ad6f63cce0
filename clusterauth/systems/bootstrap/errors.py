"""
clusterauth — Bootstrap Error Hierarchy

All exceptions raised while provisioning node keys and credentials.

Absent key files, a missing or corrupt credential cache and stale remote
records are handled in place and never raised. Everything below is fatal
to the bootstrap of the node that hit it.

Severity guide:
  KeyPersistenceError         CRITICAL -- keys could not be written; no node can sign
  CredentialStoreUnavailable  CRITICAL -- shared store unreachable or rejected the write
  CredentialCacheError        HIGH     -- record written remotely but not cached locally
  DatabaseTargetUnavailable   HIGH     -- the owner node never supplied a database URL
  KeysNotReadyError           LOW      -- programming error, keys read before ready()
"""

from __future__ import annotations


class BootstrapError(RuntimeError):
    """Base for all bootstrap errors."""


class KeyPersistenceError(BootstrapError):
    """
    The freshly generated keypair could not be persisted.

    Recovery: fix permissions on the certificate directory and restart.
    """


class KeysNotReadyError(BootstrapError):
    """Key material was read before KeyManager.ready() completed."""


class CredentialStoreUnavailable(BootstrapError):
    """
    The shared user store could not be reached or refused the write.

    The credential is not returned: a node must never run on a credential
    that exists only in memory.
    """


class CredentialCacheError(BootstrapError):
    """
    The local credential cache could not be written.

    The shared store already holds the new record; the next bootstrap of the
    same node supersedes it.
    """


class DatabaseTargetUnavailable(BootstrapError):
    """The shared database URL was never supplied by the owner node."""
