"""Cipher, hash and HMAC primitives behind the envelope format.

Algorithms are picked by name from two small registries:

- ``CIPHERS``: block ciphers usable with a 16-byte IV (CBC with PKCS7
  padding, or CTR)
- ``HASHES``: hash functions used as the PBKDF2 PRF and for HMAC signing

Every failure coming out of the ``cryptography`` backend is re-raised as a
:class:`~sealbox.core.exceptions.CryptoOperationError` subclass so callers
only ever deal with sealbox errors.
"""
from __future__ import annotations

import base64
import binascii
import hmac
import os
from typing import Callable, Dict, NamedTuple, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from sealbox.core.exceptions import (
    CryptoOperationError,
    DecryptionError,
    UnsupportedAlgorithmError,
)


IV_LENGTH = 16
BLOCK_SIZE_BITS = 128


class CipherSpec(NamedTuple):
    name: str
    algorithm: Callable
    mode: Callable
    key_size: int  # bits
    padded: bool


class HashSpec(NamedTuple):
    name: str
    primitive: Callable
    digestmod: str  # hashlib name, for hmac.new


def _cipher_table() -> Dict[str, CipherSpec]:
    table = {}
    for bits in (128, 192, 256):
        name = f"AES-{bits}-CBC"
        table[name] = CipherSpec(name, algorithms.AES, modes.CBC, bits, True)
        name = f"AES-{bits}-CTR"
        table[name] = CipherSpec(name, algorithms.AES, modes.CTR, bits, False)
    return table


CIPHERS: Dict[str, CipherSpec] = _cipher_table()

HASHES: Dict[str, HashSpec] = {
    "SHA1": HashSpec("SHA1", hashes.SHA1, "sha1"),
    "SHA224": HashSpec("SHA224", hashes.SHA224, "sha224"),
    "SHA256": HashSpec("SHA256", hashes.SHA256, "sha256"),
    "SHA384": HashSpec("SHA384", hashes.SHA384, "sha384"),
    "SHA512": HashSpec("SHA512", hashes.SHA512, "sha512"),
}


def resolve_cipher(name: str) -> CipherSpec:
    """Look up a cipher by name, ignoring case (``aes-256-cbc`` works)."""
    try:
        return CIPHERS[str(name).upper()]
    except KeyError:
        raise UnsupportedAlgorithmError(f"Unsupported cipher algorithm: {name!r}") from None


def resolve_hash(name: str) -> HashSpec:
    """Look up a hash by name; ``SHA256``, ``sha256`` and ``sha-256`` are equivalent."""
    normalized = str(name).upper().replace("-", "").replace("_", "")
    try:
        return HASHES[normalized]
    except KeyError:
        raise UnsupportedAlgorithmError(f"Unsupported hash algorithm: {name!r}") from None


def generate_iv() -> bytes:
    return os.urandom(IV_LENGTH)


def _build_cipher(key: bytes, iv: bytes, algorithm: str) -> Cipher:
    spec = resolve_cipher(algorithm)
    if len(key) * 8 != spec.key_size:
        raise CryptoOperationError(
            f"Invalid key length {len(key)} bytes for {spec.name} (expects {spec.key_size // 8})"
        )
    if len(iv) != IV_LENGTH:
        raise CryptoOperationError(f"Invalid IV length {len(iv)} bytes (expects {IV_LENGTH})")
    try:
        return Cipher(spec.algorithm(key), spec.mode(iv))
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise CryptoOperationError(f"Cannot initialise {spec.name}: {exc}") from exc


def encrypt_bytes(plaintext: bytes, key: bytes, iv: bytes, algorithm: str) -> bytes:
    spec = resolve_cipher(algorithm)
    cipher = _build_cipher(key, iv, algorithm)
    if spec.padded:
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        plaintext = padder.update(plaintext) + padder.finalize()
    encryptor = cipher.encryptor()
    return encryptor.update(plaintext) + encryptor.finalize()


def decrypt_bytes(ciphertext: bytes, key: bytes, iv: bytes, algorithm: str) -> bytes:
    spec = resolve_cipher(algorithm)
    try:
        cipher = _build_cipher(key, iv, algorithm)
    except CryptoOperationError as exc:
        raise DecryptionError(str(exc)) from exc
    try:
        decryptor = cipher.decryptor()
        data = decryptor.update(ciphertext) + decryptor.finalize()
        if spec.padded:
            # wrong key and corrupted cipher text both show up here as bad padding
            unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
            data = unpadder.update(data) + unpadder.finalize()
    except ValueError as exc:
        raise DecryptionError(f"Unable to decrypt cipher text: {exc}") from exc
    return data


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def hmac_digest(message: str | bytes, hmac_key: str | bytes, hash_algorithm: str = "SHA256") -> bytes:
    spec = resolve_hash(hash_algorithm)
    return hmac.new(_to_bytes(hmac_key), _to_bytes(message), spec.digestmod).digest()


def sign(message: str | bytes, hmac_key: Optional[str | bytes], hash_algorithm: str = "SHA256") -> Optional[str]:
    """Return the base64 HMAC of ``message``, or ``None`` when there is no key."""
    if not hmac_key:
        return None
    return base64.b64encode(hmac_digest(message, hmac_key, hash_algorithm)).decode("ascii")


def decode_signature(signature_b64: str) -> Optional[bytes]:
    try:
        return base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError):
        return None


def compare_digests(first: bytes, second: bytes) -> bool:
    """Constant-time comparison of two byte strings.

    Only the length check short-circuits; equal-length inputs are compared
    with :func:`hmac.compare_digest`.
    """
    if not isinstance(first, (bytes, bytearray)) or not isinstance(second, (bytes, bytearray)):
        return False
    if len(first) != len(second):
        return False
    return hmac.compare_digest(bytes(first), bytes(second))
