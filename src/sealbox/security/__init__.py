"""Security helpers: key derivation, primitives and the envelope protocol.

This package provides:
- PBKDF2 key derivation with per-token salts
- AES block encryption (CBC, CTR) and HMAC signing by algorithm name
- the ``$``-delimited envelope token format and its verification rules
- optional OS keystore storage for secret keys

The reusable ``Envelope`` class lives in :mod:`sealbox.security.codec`.
"""

from .kdf import generate_salt, derive_key, DerivedKey
from .crypto import CIPHERS, HASHES, compare_digests
from .envelope import (
    EnvelopeToken,
    encrypt,
    decrypt,
    decrypt_to_bytes,
    encrypt_async,
    decrypt_async,
    verify,
)
from .keystore import save_key, load_key, delete_key

__all__ = [
    "generate_salt",
    "derive_key",
    "DerivedKey",
    "CIPHERS",
    "HASHES",
    "compare_digests",
    "EnvelopeToken",
    "encrypt",
    "decrypt",
    "decrypt_to_bytes",
    "encrypt_async",
    "decrypt_async",
    "verify",
    "save_key",
    "load_key",
    "delete_key",
]
