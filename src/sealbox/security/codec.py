"""Reusable ``Envelope`` instances and one-shot helpers.

Both are thin wrappers around :mod:`sealbox.security.envelope`; they only
differ in where the configuration comes from. An :class:`Envelope` validates
its configuration once and reuses it for every call, while :func:`encrypt` and
:func:`decrypt` build a fresh configuration from per-call options.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from sealbox.core.config import DEFAULT_ALGORITHM, DEFAULT_HMAC_ALGORITHM, EnvelopeConfig
from sealbox.security import envelope
from sealbox.security.kdf import DEFAULT_ITERATIONS, DerivedKey, derive_for_config


class Envelope:
    """
    Encrypts and decrypts envelope tokens with a built-in key.

    Either pass the options directly::

        box = Envelope("secret", hmac_key="signing-secret")
        token = box.encrypt("hello")
        box.decrypt(token)

    or hand over a ready :class:`EnvelopeConfig` via ``config=``. The instance
    holds no mutable state, so one instance can be shared between threads.
    """

    def __init__(
        self,
        key: Optional[str | bytes] = None,
        *,
        hmac_key: Optional[str | bytes] = None,
        algorithm: str = DEFAULT_ALGORITHM,
        hmac_algorithm: str = DEFAULT_HMAC_ALGORITHM,
        iterations: int = DEFAULT_ITERATIONS,
        key_length: Optional[int] = None,
        config: Optional[EnvelopeConfig] = None,
    ):
        if config is None:
            config = EnvelopeConfig(
                key=key,
                hmac_key=hmac_key,
                algorithm=algorithm,
                hmac_algorithm=hmac_algorithm,
                iterations=iterations,
                key_length=key_length,
            )
        self._config = config

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Envelope":
        return cls(config=EnvelopeConfig.from_env(environ))

    @classmethod
    def from_keyring(cls, service: str, account: str, **options: Any) -> "Envelope":
        return cls(config=EnvelopeConfig.from_keyring(service, account, **options))

    @property
    def config(self) -> EnvelopeConfig:
        return self._config

    @property
    def algorithm(self) -> str:
        return self._config.algorithm

    def __repr__(self) -> str:
        return f"Envelope(algorithm={self.algorithm!r}, signed={self._config.signing_enabled})"

    def generate_derived_key(self, salt: Optional[str | bytes] = None) -> DerivedKey:
        """Derive the encryption key; a random 16-byte salt is used if none is given."""
        return derive_for_config(self._config, salt)

    def sign(self, data: str) -> str:
        """Return ``data`` with the HMAC signature appended, or unchanged without an HMAC key."""
        return envelope.sign_token(data, self._config)

    def verify(self, token: str) -> bool:
        return envelope.verify_with_config(token, self._config)

    def encrypt(self, plaintext: str | bytes) -> str:
        return envelope.encrypt(plaintext, self._config)

    def decrypt(self, token: str) -> str:
        return envelope.decrypt(token, self._config)

    def decrypt_bytes(self, token: str) -> bytes:
        return envelope.decrypt_to_bytes(token, self._config)

    async def encrypt_async(self, plaintext: str | bytes) -> str:
        return await envelope.encrypt_async(plaintext, self._config)

    async def decrypt_async(self, token: str) -> str:
        return await envelope.decrypt_async(token, self._config)


def encrypt(plaintext: str | bytes, options: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> str:
    """One-shot encryption; ``options``/``kwargs`` are the :class:`Envelope` options."""
    return envelope.encrypt(plaintext, EnvelopeConfig.from_options(options, **kwargs))


def decrypt(token: str, options: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> str:
    """One-shot decryption of a token produced by :func:`encrypt` or :class:`Envelope`.

    The token is checked before the options, so a missing token is reported
    even when the key is missing too.
    """
    envelope.EnvelopeToken.parse(token)
    return envelope.decrypt(token, EnvelopeConfig.from_options(options, **kwargs))
