"""Immutable envelope configuration, validated once at construction."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from sealbox.core.exceptions import ConfigurationError, UnsupportedAlgorithmError
from sealbox.security.crypto import resolve_cipher, resolve_hash
from sealbox.security.kdf import DEFAULT_ITERATIONS
from sealbox.security import keystore


DEFAULT_ALGORITHM = "AES-256-CBC"
DEFAULT_HMAC_ALGORITHM = "SHA256"
ALLOWED_KEY_LENGTHS = (128, 192, 256)
ENV_PREFIX = "SEALBOX_"

# option-bag spellings accepted by from_options()
_OPTION_ALIASES = {
    "key": "key",
    "hmacKey": "hmac_key",
    "hmac_key": "hmac_key",
    "algorithm": "algorithm",
    "hmacAlgorithm": "hmac_algorithm",
    "hmac_algorithm": "hmac_algorithm",
    "iterations": "iterations",
    "keyLength": "key_length",
    "key_length": "key_length",
}


@dataclass(frozen=True)
class EnvelopeConfig:
    """Everything needed to encrypt or decrypt an envelope token.

    ``key_length`` is in bits. When left as ``None`` it follows the key size
    of ``algorithm`` (256 for the default AES-256-CBC).
    """

    key: str | bytes = field(repr=False)
    hmac_key: Optional[str | bytes] = field(default=None, repr=False)
    algorithm: str = DEFAULT_ALGORITHM
    hmac_algorithm: str = DEFAULT_HMAC_ALGORITHM
    iterations: int = DEFAULT_ITERATIONS
    key_length: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ConfigurationError('You must provide a "key"')
        if not isinstance(self.key, (str, bytes, bytearray)):
            raise ConfigurationError('"key" must be a string or bytes')
        if not self.hmac_key:
            object.__setattr__(self, "hmac_key", None)
        elif not isinstance(self.hmac_key, (str, bytes, bytearray)):
            raise ConfigurationError('"hmac_key" must be a string or bytes')

        try:
            cipher = resolve_cipher(self.algorithm)
            digest = resolve_hash(self.hmac_algorithm)
        except UnsupportedAlgorithmError as exc:
            raise ConfigurationError(str(exc)) from exc
        object.__setattr__(self, "algorithm", cipher.name)
        object.__setattr__(self, "hmac_algorithm", digest.name)

        if isinstance(self.iterations, bool) or not isinstance(self.iterations, int) or self.iterations < 1:
            raise ConfigurationError(f'"iterations" must be a positive integer, got {self.iterations!r}')

        if self.key_length is None:
            object.__setattr__(self, "key_length", cipher.key_size)
        elif (
            isinstance(self.key_length, bool)
            or not isinstance(self.key_length, int)
            or self.key_length not in ALLOWED_KEY_LENGTHS
        ):
            raise ConfigurationError(
                f'"key_length" must be one of {ALLOWED_KEY_LENGTHS}, got {self.key_length!r}'
            )
        elif self.key_length != cipher.key_size:
            raise ConfigurationError(
                f'"key_length" {self.key_length} does not match {cipher.name} ({cipher.key_size}-bit key)'
            )

    @property
    def key_length_bytes(self) -> int:
        return self.key_length // 8

    @property
    def signing_enabled(self) -> bool:
        return self.hmac_key is not None

    def replace(self, **changes: Any) -> "EnvelopeConfig":
        """Return a validated copy with ``changes`` applied."""
        if "algorithm" in changes and "key_length" not in changes:
            # re-infer the key length from the new cipher
            changes["key_length"] = None
        return dataclasses.replace(self, **changes)

    # ------------------------------------------------------------------
    # Alternate constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "EnvelopeConfig":
        """
        Build a config from a loose option bag such as
        ``{"key": ..., "hmacKey": ..., "keyLength": 128}``.

        Both camelCase and snake_case spellings are accepted. Options that are
        ``None`` fall back to the defaults; unknown names are rejected.
        """
        merged: Dict[str, Any] = {}
        for source in (options or {}, overrides):
            for name, value in source.items():
                if name not in _OPTION_ALIASES:
                    raise ConfigurationError(f"Unknown option {name!r}")
                if value is not None:
                    merged[_OPTION_ALIASES[name]] = value
        if "key" not in merged:
            raise ConfigurationError('You must provide a "key"')
        return cls(**merged)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, prefix: str = ENV_PREFIX) -> "EnvelopeConfig":
        """
        Read the configuration from environment variables.

        ``<prefix>KEY`` is required; ``<prefix>HMAC_KEY``, ``<prefix>ALGORITHM``,
        ``<prefix>HMAC_ALGORITHM``, ``<prefix>ITERATIONS`` and
        ``<prefix>KEY_LENGTH`` are optional.
        """
        env = os.environ if environ is None else environ
        key = env.get(f"{prefix}KEY")
        if not key:
            raise ConfigurationError(f"Environment variable {prefix}KEY is not set")

        options: Dict[str, Any] = {
            "key": key,
            "hmac_key": env.get(f"{prefix}HMAC_KEY"),
            "algorithm": env.get(f"{prefix}ALGORITHM"),
            "hmac_algorithm": env.get(f"{prefix}HMAC_ALGORITHM"),
        }
        for name in ("iterations", "key_length"):
            raw = env.get(f"{prefix}{name.upper()}")
            if raw is None or raw == "":
                continue
            try:
                options[name] = int(raw)
            except ValueError:
                raise ConfigurationError(f"{prefix}{name.upper()} must be an integer, got {raw!r}") from None
        return cls.from_options(options)

    @classmethod
    def from_keyring(cls, service: str, account: str, **options: Any) -> "EnvelopeConfig":
        """
        Load the secret key (and, if stored, the HMAC key under
        ``"<account>:hmac"``) from the OS keystore.
        """
        key = keystore.load_key(service, account)
        if key is None:
            raise ConfigurationError(f"No key found in OS keystore for {service}/{account}")
        if options.get("hmac_key") is None and options.get("hmacKey") is None:
            options["hmac_key"] = keystore.load_key(service, keystore.hmac_account(account))
        return cls.from_options(options, key=key)
