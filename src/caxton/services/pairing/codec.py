"""Envelope encryption binding a push token to an application name.

An envelope is the JSON record ``{"token": ..., "appname": ...}`` encrypted
with the service public key and base64 encoded.  RSA-OAEP (SHA-1) can only
encrypt ``key_bytes - 42`` bytes at a time, so longer records are split into
blocks whose ciphertexts are concatenated; every ciphertext block is exactly
``key_bytes`` long.  This matches the envelopes already held by paired apps.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from caxton.services.crypto import CryptoContext

from .errors import AppNameMismatch, MalformedEnvelope

__all__ = ["TokenCodec"]

logger = logging.getLogger(__name__)

_HASH_BYTES = 20


def _oaep() -> padding.OAEP:
    return padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA1()), algorithm=hashes.SHA1(), label=None)


class TokenCodec:
    def __init__(self, crypto: CryptoContext, *, strict_app_name: bool = False) -> None:
        self._crypto = crypto
        self._strict_app_name = strict_app_name

    @property
    def _block_size(self) -> int:
        return self._crypto.key_size_bytes

    @property
    def _max_chunk(self) -> int:
        return self._block_size - 2 * _HASH_BYTES - 2

    def mint(self, token: str, app_name: str) -> str:
        record = json.dumps({"token": token, "appname": app_name}, separators=(",", ":"))
        return self._encrypt(record.encode("utf-8"))

    def open(self, envelope: str) -> dict[str, Any]:
        """Decrypt an envelope and return the raw record without validating it."""
        if not isinstance(envelope, str):
            raise MalformedEnvelope("envelope is not a string")
        # envelopes pasted into web forms often come back wrapped
        compact = "".join(envelope.split())
        try:
            raw = base64.b64decode(compact, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MalformedEnvelope("envelope is not valid base64") from exc
        plaintext = self._decrypt(raw)
        try:
            record = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedEnvelope("envelope does not contain JSON") from exc
        if not isinstance(record, dict):
            raise MalformedEnvelope("envelope JSON is not an object")
        return record

    def unwrap(self, envelope: str, expected_app_name: str | None = None) -> str:
        record = self.open(envelope)
        token = record.get("token")
        if not token or not isinstance(token, str):
            raise MalformedEnvelope("no token entry in envelope")
        app_name = record.get("appname")
        if app_name is None:
            # envelopes minted before app names were bound carry none
            if self._strict_app_name and expected_app_name:
                raise AppNameMismatch(expected_app_name, None)
            return token
        if expected_app_name and app_name != expected_app_name:
            raise AppNameMismatch(expected_app_name, app_name)
        return token

    def _encrypt(self, data: bytes) -> str:
        public_key = self._crypto.public_key
        step = self._max_chunk
        blocks = [public_key.encrypt(data[i : i + step], _oaep()) for i in range(0, max(len(data), 1), step)]
        return base64.b64encode(b"".join(blocks)).decode("ascii")

    def _decrypt(self, data: bytes) -> bytes:
        size = self._block_size
        if not data or len(data) % size:
            raise MalformedEnvelope("envelope length does not match key size")
        private_key = self._crypto.private_key
        out = bytearray()
        for i in range(0, len(data), size):
            try:
                out += private_key.decrypt(data[i : i + size], _oaep())
            except ValueError as exc:
                raise MalformedEnvelope("envelope cannot be decrypted with the service key") from exc
        return bytes(out)
