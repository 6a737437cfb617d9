"""OS keystore integration using keyring for optional secret-key storage.

Secrets are stored base64-encoded under a service/account pair so both text
passwords and raw key bytes survive backends that only hold strings. The HMAC
key of a configuration lives next to the secret key under ``"<account>:hmac"``.
Do not assume keyring provides hardware-backed security on all platforms.
"""
import base64
import binascii
import logging
from typing import Optional

from sealbox.core.exceptions import ConfigurationError

try:
    import keyring
    from keyring.errors import PasswordDeleteError
except ImportError:
    keyring = None
    PasswordDeleteError = None

logger = logging.getLogger(__name__)


def _require_keyring():
    if keyring is None:
        raise ConfigurationError("keyring package is not available; install keyring to use keystore features")


def hmac_account(account: str) -> str:
    return f"{account}:hmac"


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because the `keyring` package exposes different backends
    across platforms. If `keyring` is not available this returns (False, reason).
    """
    if keyring is None:
        return False, "keyring package is not installed"

    backend = keyring.get_keyring()
    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "Fail", "Null")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def save_key(service: str, account: str, key: str | bytes, force: bool = False) -> None:
    """Persist ``key`` in the OS keystore under (service, account).

    Refuses backends that look insecure unless ``force`` is set.
    """
    _require_keyring()
    if not force:
        secure, msg = assess_keyring_backend()
        if not secure:
            raise ConfigurationError(
                f"refusing to store key in OS keystore: {msg}; "
                "pass force=True to override if you understand the risk"
            )
    if isinstance(key, str):
        key = key.encode("utf-8")
    secret = base64.b64encode(key).decode("ascii")
    keyring.set_password(service, account, secret)
    logger.debug("stored key for %s/%s in OS keystore", service, account)


def load_key(service: str, account: str) -> Optional[bytes]:
    """Load a persisted key from the OS keystore; returns raw bytes or None."""
    _require_keyring()
    secret = keyring.get_password(service, account)
    if secret is None:
        return None
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(f"Stored key for {service}/{account} is not valid base64") from exc


def delete_key(service: str, account: str) -> None:
    """Remove the key from the OS keystore; a missing entry is not an error."""
    _require_keyring()
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        logger.debug("no key stored for %s/%s", service, account)
