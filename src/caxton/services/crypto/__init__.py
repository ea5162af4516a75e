"""Key material for the relay's envelope encryption."""
from .keys import (
    PRIVATE_KEY_FILENAME,
    PUBLIC_KEY_FILENAME,
    CryptoContext,
    KeyLoadError,
    generate_rsa_key,
    write_private_key,
    write_public_key,
)

__all__ = [
    "CryptoContext",
    "KeyLoadError",
    "PRIVATE_KEY_FILENAME",
    "PUBLIC_KEY_FILENAME",
    "generate_rsa_key",
    "write_private_key",
    "write_public_key",
]
