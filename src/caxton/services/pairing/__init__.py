"""Pairing codes and push-token envelopes for the Caxton relay."""
from .codec import TokenCodec
from .errors import (
    AppNameMismatch,
    CodeNotFound,
    DependencyError,
    DispatchFailed,
    EnvelopeError,
    InvalidToken,
    MalformedEnvelope,
    MissingAppName,
    MissingCode,
    MissingFields,
    MissingPushToken,
    NotFoundError,
    PairingError,
    StoreError,
    ValidationError,
)
from .models import CODE_ALPHABET, CODE_LENGTH, CODE_LIFETIME, PairingCode
from .protocol import PairingProtocol, generate_code
from .store import CodeStore, InMemoryCodeStore, SQLiteCodeStore, open_code_store

__all__ = [
    "TokenCodec",
    "PairingProtocol",
    "generate_code",
    "CodeStore",
    "InMemoryCodeStore",
    "SQLiteCodeStore",
    "open_code_store",
    "PairingCode",
    "CODE_ALPHABET",
    "CODE_LENGTH",
    "CODE_LIFETIME",
    "PairingError",
    "ValidationError",
    "MissingPushToken",
    "MissingCode",
    "MissingAppName",
    "MissingFields",
    "NotFoundError",
    "CodeNotFound",
    "InvalidToken",
    "DependencyError",
    "StoreError",
    "DispatchFailed",
    "EnvelopeError",
    "MalformedEnvelope",
    "AppNameMismatch",
]
