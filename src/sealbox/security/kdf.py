"""PBKDF2 key derivation for sealbox envelopes."""
from __future__ import annotations

import base64
import binascii
import os
from typing import TYPE_CHECKING, NamedTuple, Optional

from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sealbox.core.exceptions import (
    ConfigurationError,
    KeyDerivationError,
    UnsupportedAlgorithmError,
)
from .crypto import resolve_hash

if TYPE_CHECKING:
    from sealbox.core.config import EnvelopeConfig


SALT_LENGTH = 16
DEFAULT_ITERATIONS = 2 ** 17
DEFAULT_KEY_LENGTH_BYTES = 32


class DerivedKey(NamedTuple):
    key: bytes
    salt: bytes


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def coerce_salt(salt: Optional[str | bytes]) -> bytes:
    """Turn a caller-supplied salt into bytes.

    ``None`` yields a fresh random salt, bytes pass through and text is
    treated as base64 (the form the salt takes inside a token).
    """
    if salt is None:
        return generate_salt()
    if isinstance(salt, (bytes, bytearray)):
        return bytes(salt)
    try:
        return base64.b64decode(salt, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise KeyDerivationError("Salt is not valid base64") from exc


def derive_key(
    secret: str | bytes,
    salt: Optional[str | bytes] = None,
    *,
    iterations: int = DEFAULT_ITERATIONS,
    key_length: int = DEFAULT_KEY_LENGTH_BYTES,
    hash_algorithm: str = "SHA256",
) -> DerivedKey:
    """
    Derive an encryption key from ``secret`` using PBKDF2-HMAC.
    Returns the key together with the salt that was used so it can be stored.
    """
    if not secret:
        raise ConfigurationError('You must provide a "key"')
    if not isinstance(secret, (str, bytes, bytearray)):
        raise ConfigurationError('"key" must be a string or bytes')
    if isinstance(secret, str):
        secret = secret.encode("utf-8")

    salt_bytes = coerce_salt(salt)
    try:
        kdf = PBKDF2HMAC(
            algorithm=resolve_hash(hash_algorithm).primitive(),
            length=key_length,
            salt=salt_bytes,
            iterations=iterations,
        )
        key = kdf.derive(bytes(secret))
    except UnsupportedAlgorithmError as exc:
        raise KeyDerivationError(str(exc)) from exc
    except (ValueError, TypeError) as exc:
        raise KeyDerivationError(f"Key derivation failed: {exc}") from exc
    return DerivedKey(key, salt_bytes)


def derive_for_config(config: "EnvelopeConfig", salt: Optional[str | bytes] = None) -> DerivedKey:
    return derive_key(
        config.key,
        salt,
        iterations=config.iterations,
        key_length=config.key_length_bytes,
        hash_algorithm=config.hmac_algorithm,
    )
