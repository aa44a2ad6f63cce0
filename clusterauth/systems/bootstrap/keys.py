"""
clusterauth — Key Manager

Owns the cluster-wide RSA signing keypair that `api` and `auth` nodes use to
sign and verify authorization tokens.

The first call to `ready()` loads `auth.private.pem` / `auth.public.pem`
from the certificate directory. If either is missing or unreadable a fresh
keypair is generated and written next to a `.gitignore` marker so the
directory never ends up in version control. Every later call, concurrent or
not, awaits the same load and receives the same material.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import TYPE_CHECKING, Any

import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from clusterauth.primitives.node import KeypairMaterial
from clusterauth.systems.bootstrap.errors import KeyPersistenceError, KeysNotReadyError
from clusterauth.systems.bootstrap.files import ensure_directory, read_text_or_none, write_atomic

if TYPE_CHECKING:
    from clusterauth.config import CertConfig

logger = structlog.get_logger("clusterauth.systems.bootstrap.keys")

_PRIVATE_KEY_MODE = 0o600


class KeyManager:
    """
    Load-or-generate for the shared signing keypair.

    Not thread-safe. Single asyncio loop, like the rest of the bootstrap.
    """

    def __init__(self, config: CertConfig) -> None:
        self._config = config
        self._cert_dir = config.path
        self._material: KeypairMaterial | None = None
        self._ready: asyncio.Future[KeypairMaterial] | None = None
        self._generated = False
        self._logger = logger.bind(component="key_manager")

    # ─── Readiness ──────────────────────────────────────────────────

    async def ready(self) -> KeypairMaterial:
        """
        Wait until key material is in memory and return it.

        The load runs once per KeyManager. Cancelling one waiter does not
        cancel the load for the others.
        """
        if self._ready is None:
            self._ready = asyncio.ensure_future(self._load_or_generate())
        return await asyncio.shield(self._ready)

    @property
    def is_ready(self) -> bool:
        return self._material is not None

    @property
    def material(self) -> KeypairMaterial:
        if self._material is None:
            raise KeysNotReadyError("KeyManager.ready() has not completed")
        return self._material

    @property
    def fingerprint(self) -> str:
        """SHA-256 of the public key PEM."""
        return hashlib.sha256(self.material.public_key.encode()).hexdigest()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "ready": self.is_ready,
            "generated": self._generated,
            "cert_dir": str(self._cert_dir),
            "fingerprint_prefix": self.fingerprint[:16] if self.is_ready else None,
        }

    # ─── Load / Generate ────────────────────────────────────────────

    async def _load_or_generate(self) -> KeypairMaterial:
        material = self._load_existing()
        if material is None:
            loop = asyncio.get_running_loop()
            material = await loop.run_in_executor(None, self._generate)
            self._persist(material)
            self._generated = True

        self._material = material
        self._logger.info(
            "signing_keys_ready",
            generated=self._generated,
            fingerprint=self.fingerprint[:16] + "...",
        )
        return material

    def _load_existing(self) -> KeypairMaterial | None:
        private_path = self._cert_dir / self._config.private_key_file
        public_path = self._cert_dir / self._config.public_key_file

        private_pem = read_text_or_none(private_path)
        public_pem = read_text_or_none(public_path)
        if private_pem is None or public_pem is None:
            self._logger.info(
                "signing_keys_not_found",
                private_present=private_pem is not None,
                public_present=public_pem is not None,
                cert_dir=str(self._cert_dir),
            )
            return None

        self._logger.debug("signing_keys_loaded", cert_dir=str(self._cert_dir))
        return KeypairMaterial(public_key=public_pem, private_key=private_pem)

    def _generate(self) -> KeypairMaterial:
        private_key = rsa.generate_private_key(
            public_exponent=self._config.public_exponent,
            key_size=self._config.key_size,
        )
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")
        return KeypairMaterial(public_key=public_pem, private_key=private_pem)

    def _persist(self, material: KeypairMaterial) -> None:
        try:
            ensure_directory(self._cert_dir)
            write_atomic(self._cert_dir / self._config.public_key_file, material.public_key)
            write_atomic(
                self._cert_dir / self._config.private_key_file,
                material.private_key,
                mode=_PRIVATE_KEY_MODE,
            )
            write_atomic(self._cert_dir / self._config.ignore_marker_file, "*\n")
        except OSError as exc:
            self._logger.error(
                "signing_keys_persist_failed",
                cert_dir=str(self._cert_dir),
                error=str(exc),
            )
            raise KeyPersistenceError(
                f"Could not persist signing keys to {self._cert_dir}: {exc}"
            ) from exc

        self._logger.info("signing_keys_generated", cert_dir=str(self._cert_dir))
