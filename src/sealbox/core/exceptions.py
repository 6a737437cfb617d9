"""
Exceptions for sealbox
Everything derives from SealboxError so callers have a single error catcher
"""


class SealboxError(Exception):
    # general container for errors
    pass


class ConfigurationError(SealboxError, ValueError):
    # raised when the secret key is missing or an option is invalid
    pass


class InvalidInputError(SealboxError, ValueError):
    # raised on missing/empty plain text or a malformed token
    pass


class AuthenticationPolicyError(SealboxError):
    # raised when only one of (hmac key, signature) is present
    pass


class AuthenticationFailedError(SealboxError):
    # raised on an HMAC mismatch (tampered token or wrong hmac key)
    pass


class CryptoOperationError(SealboxError):
    # raised when a primitive (kdf, cipher, hmac) fails
    pass


class UnsupportedAlgorithmError(CryptoOperationError):
    # raised for cipher or hash names missing from the registries
    pass


class KeyDerivationError(CryptoOperationError):
    # raised when PBKDF2 fails
    pass


class DecryptionError(CryptoOperationError):
    # raised on bad padding, wrong key, corrupted cipher text
    pass
