"""Password-derived envelope encryption.

Token layout (text, ``$``-delimited, standard base64 fields)::

    <ciphertext>$<iv>$<salt>            unsigned
    <ciphertext>$<iv>$<salt>$<hmac>     signed

The HMAC covers the UTF-8 bytes of the first three fields joined with ``$``.
Neither the cipher nor the hash is recorded in the token; both sides must
share the same :class:`~sealbox.core.config.EnvelopeConfig`.

Decryption runs PARSE -> VERIFY -> DERIVE -> DECIPHER and stops at the first
failure. The cipher is never reached when verification fails or cannot be
performed.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from sealbox.core.exceptions import (
    AuthenticationFailedError,
    AuthenticationPolicyError,
    DecryptionError,
    InvalidInputError,
)
from .crypto import compare_digests, decode_signature, decrypt_bytes, encrypt_bytes, generate_iv, hmac_digest, sign
from .kdf import derive_for_config

if TYPE_CHECKING:
    from sealbox.core.config import EnvelopeConfig


DELIMITER = "$"
UNSIGNED_FIELDS = 3
SIGNED_FIELDS = 4

logger = logging.getLogger(__name__)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(text: str, what: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidInputError(f"Encoded text is invalid: {what} is not valid base64") from exc


@dataclass(frozen=True)
class EnvelopeToken:
    """The parsed fields of a token, still as base64 text."""

    ciphertext: str
    iv: str
    salt: str
    signature: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "EnvelopeToken":
        if text is None:
            raise InvalidInputError("No cipher text provided")
        if not isinstance(text, str) or not text:
            raise InvalidInputError("Invalid cipher text")
        parts = text.split(DELIMITER)
        if len(parts) not in (UNSIGNED_FIELDS, SIGNED_FIELDS):
            raise InvalidInputError(f"Encoded text is invalid: expected 3 or 4 fields, got {len(parts)}")
        return cls(*parts)

    @property
    def signed(self) -> bool:
        return self.signature is not None

    @property
    def signed_part(self) -> str:
        return DELIMITER.join((self.ciphertext, self.iv, self.salt))

    def fields(self) -> List[str]:
        parts = [self.ciphertext, self.iv, self.salt]
        if self.signature is not None:
            parts.append(self.signature)
        return parts

    def ciphertext_bytes(self) -> bytes:
        return _unb64(self.ciphertext, "cipher text")

    def iv_bytes(self) -> bytes:
        return _unb64(self.iv, "iv")

    def salt_bytes(self) -> bytes:
        return _unb64(self.salt, "salt")

    def __str__(self) -> str:
        return DELIMITER.join(self.fields())


# ----------------------------------------------------------------------
# Signing / verification
# ----------------------------------------------------------------------


def sign_token(encoded: str, config: "EnvelopeConfig") -> str:
    """Append ``$<hmac>`` to ``encoded`` if the config has an HMAC key."""
    signature = sign(encoded, config.hmac_key, config.hmac_algorithm)
    if signature is None:
        return encoded
    return encoded + DELIMITER + signature


def _check_signature(token: EnvelopeToken, hmac_key: Optional[str | bytes], hash_algorithm: str) -> bool:
    if hmac_key or token.signed:
        if not hmac_key:
            raise AuthenticationPolicyError(
                'An "hmac_key" is required to verify the HMAC signature of the cipher text'
            )
        if not token.signed:
            raise AuthenticationPolicyError(
                'An "hmac_key" was provided but the cipher text does not include an HMAC signature'
            )
        expected = hmac_digest(token.signed_part, hmac_key, hash_algorithm)
        actual = decode_signature(token.signature)
        return actual is not None and compare_digests(expected, actual)
    return True


def verify(token: str, hmac_key: Optional[str | bytes] = None, hash_algorithm: str = "SHA256") -> bool:
    """Check the HMAC signature of ``token``.

    Returns ``True`` when the signature matches, or when there is neither a key
    nor a signature. Returns ``False`` on a mismatch. Raises
    :class:`AuthenticationPolicyError` when only one of key and signature is
    present.
    """
    return _check_signature(EnvelopeToken.parse(token), hmac_key, hash_algorithm)


def verify_with_config(token: str, config: "EnvelopeConfig") -> bool:
    return verify(token, config.hmac_key, config.hmac_algorithm)


# ----------------------------------------------------------------------
# Encrypt / decrypt
# ----------------------------------------------------------------------


def _plaintext_bytes(plaintext: str | bytes) -> bytes:
    if plaintext is None:
        raise InvalidInputError("No plain text provided")
    if isinstance(plaintext, str):
        data = plaintext.encode("utf-8")
    elif isinstance(plaintext, (bytes, bytearray, memoryview)):
        data = bytes(plaintext)
    else:
        raise InvalidInputError(f"Invalid plain text data: unsupported type {type(plaintext).__name__}")
    if not data:
        raise InvalidInputError("Invalid plain text data")
    return data


def encrypt(plaintext: str | bytes, config: "EnvelopeConfig") -> str:
    """Encrypt ``plaintext`` into a token using a fresh salt and IV."""
    data = _plaintext_bytes(plaintext)

    derived = derive_for_config(config)
    iv = generate_iv()
    ciphertext = encrypt_bytes(data, derived.key, iv, config.algorithm)

    encoded = DELIMITER.join((_b64(ciphertext), _b64(iv), _b64(derived.salt)))
    token = sign_token(encoded, config)
    logger.debug(
        "encrypted %d bytes with %s (%s, signed=%s)",
        len(data),
        config.algorithm,
        config.hmac_algorithm,
        config.signing_enabled,
    )
    return token


def _open(token: str, config: "EnvelopeConfig") -> bytes:
    # PARSE
    parsed = EnvelopeToken.parse(token)

    # VERIFY
    if not _check_signature(parsed, config.hmac_key, config.hmac_algorithm):
        logger.warning("HMAC signature verification failed")
        raise AuthenticationFailedError("HMAC signature verification failed")

    # DERIVE
    iv = parsed.iv_bytes()
    salt = parsed.salt_bytes()
    ciphertext = parsed.ciphertext_bytes()
    derived = derive_for_config(config, salt)

    # DECIPHER
    data = decrypt_bytes(ciphertext, derived.key, iv, config.algorithm)
    logger.debug("decrypted %d bytes with %s", len(data), config.algorithm)
    return data


def decrypt(token: str, config: "EnvelopeConfig") -> str:
    """Verify and decrypt ``token``, returning the plaintext as text."""
    data = _open(token, config)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError("Decrypted data is not valid UTF-8") from exc


def decrypt_to_bytes(token: str, config: "EnvelopeConfig") -> bytes:
    """Like :func:`decrypt` but returns raw bytes, for binary payloads."""
    return _open(token, config)


# ----------------------------------------------------------------------
# Async
# ----------------------------------------------------------------------


async def _run_blocking(func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args))


async def encrypt_async(plaintext: str | bytes, config: "EnvelopeConfig") -> str:
    """:func:`encrypt` on the default executor; PBKDF2 is what blocks."""
    return await _run_blocking(encrypt, plaintext, config)


async def decrypt_async(token: str, config: "EnvelopeConfig") -> str:
    return await _run_blocking(decrypt, token, config)
