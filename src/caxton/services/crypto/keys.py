from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)

PRIVATE_KEY_FILENAME = "private.key"
PUBLIC_KEY_FILENAME = "public.key"


class KeyLoadError(RuntimeError):
    """Raised when the service keypair cannot be read from disk."""


def generate_rsa_key(bits: int = 2048) -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def write_private_key(path: Path, key: rsa.RSAPrivateKey) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    path.write_bytes(pem)
    try:
        path.chmod(0o600)
    except PermissionError:
        # best effort on platforms that do not support chmod
        pass


def write_public_key(path: Path, key: rsa.RSAPublicKey) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    pem = key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    path.write_bytes(pem)


def _read_pem(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise KeyLoadError(f"cannot read key file {path}: {exc}") from exc


@dataclass(frozen=True, slots=True)
class CryptoContext:
    """The service keypair, loaded once at startup and shared by reference."""

    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey

    @property
    def key_size_bytes(self) -> int:
        return self.public_key.key_size // 8

    @classmethod
    def from_files(cls, private_key_path: str | Path, public_key_path: str | Path) -> "CryptoContext":
        """Load PEM keys (PKCS#1 or PKCS#8 private, PKCS#1 or SPKI public)."""
        private_path = Path(private_key_path)
        public_path = Path(public_key_path)
        try:
            private_key = serialization.load_pem_private_key(_read_pem(private_path), password=None)
            public_key = serialization.load_pem_public_key(_read_pem(public_path))
        except ValueError as exc:
            raise KeyLoadError(f"invalid PEM key material: {exc}") from exc
        if not isinstance(private_key, rsa.RSAPrivateKey) or not isinstance(public_key, rsa.RSAPublicKey):
            raise KeyLoadError("service keys must be RSA keys")
        logger.info("loaded %d-bit service keypair from %s", public_key.key_size, private_path.parent)
        return cls(private_key=private_key, public_key=public_key)

    @classmethod
    def generate(cls, bits: int = 2048) -> "CryptoContext":
        key = generate_rsa_key(bits)
        return cls(private_key=key, public_key=key.public_key())

    def write(self, out_dir: Path) -> tuple[Path, Path]:
        private_path = out_dir / PRIVATE_KEY_FILENAME
        public_path = out_dir / PUBLIC_KEY_FILENAME
        write_private_key(private_path, self.private_key)
        write_public_key(public_path, self.public_key)
        return private_path, public_path


__all__ = [
    "CryptoContext",
    "KeyLoadError",
    "PRIVATE_KEY_FILENAME",
    "PUBLIC_KEY_FILENAME",
    "generate_rsa_key",
    "write_private_key",
    "write_public_key",
]
