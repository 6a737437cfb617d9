"""
Unit tests for the envelope protocol: token format, signing policy,
tamper detection and the decrypt pipeline.
"""

import asyncio
import base64
import os
from unittest.mock import patch

import pytest
from sealbox.core.config import EnvelopeConfig
from sealbox.core.exceptions import (
    AuthenticationFailedError,
    AuthenticationPolicyError,
    DecryptionError,
    InvalidInputError,
)
from sealbox.security import envelope
from sealbox.security.envelope import EnvelopeToken


ITERATIONS = 1000


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def config():
    """Unsigned configuration with a random 32-byte key."""
    return EnvelopeConfig(os.urandom(32), iterations=ITERATIONS)


@pytest.fixture
def signed_config(config):
    return config.replace(hmac_key=os.urandom(32))


@pytest.fixture
def plaintext():
    """128 hex characters."""
    return os.urandom(64).hex()


def _flip(text: str, index: int) -> str:
    replacement = "A" if text[index] != "A" else "B"
    return text[:index] + replacement + text[index + 1:]


# ==============================================================================
# Tests: EnvelopeToken
# ==============================================================================

def test_token_parse_unsigned():
    token = EnvelopeToken.parse("Y3Q=$aXY=$c2FsdA==")
    assert token.ciphertext == "Y3Q="
    assert token.iv == "aXY="
    assert token.salt == "c2FsdA=="
    assert not token.signed
    assert token.salt_bytes() == b"salt"


def test_token_parse_signed_and_serialise():
    text = "Y3Q=$aXY=$c2FsdA==$c2ln"
    token = EnvelopeToken.parse(text)
    assert token.signed
    assert token.signed_part == "Y3Q=$aXY=$c2FsdA=="
    assert str(token) == text


@pytest.mark.parametrize("text", ["onlyone", "a$b", "a$b$c$d$e"])
def test_token_parse_wrong_field_count(text):
    with pytest.raises(InvalidInputError, match="Encoded text is invalid"):
        EnvelopeToken.parse(text)


@pytest.mark.parametrize("text", ["", 42, b"a$b$c"])
def test_token_parse_invalid_input(text):
    with pytest.raises(InvalidInputError, match="Invalid cipher text"):
        EnvelopeToken.parse(text)


def test_token_parse_none():
    with pytest.raises(InvalidInputError, match="No cipher text"):
        EnvelopeToken.parse(None)


def test_token_field_not_base64():
    token = EnvelopeToken.parse("Y3Q=$!!!$c2FsdA==")
    with pytest.raises(InvalidInputError, match="iv is not valid base64"):
        token.iv_bytes()


# ==============================================================================
# Tests: Encrypt
# ==============================================================================

def test_encrypt_unsigned_has_three_fields(config, plaintext):
    token = envelope.encrypt(plaintext, config)
    parts = token.split("$")
    assert len(parts) == 3
    assert len(base64.b64decode(parts[1])) == 16
    assert len(base64.b64decode(parts[2])) == 16


def test_encrypt_signed_has_four_fields(signed_config, plaintext):
    assert len(envelope.encrypt(plaintext, signed_config).split("$")) == 4


def test_encrypt_is_randomised(config, plaintext):
    first = envelope.encrypt(plaintext, config).split("$")
    second = envelope.encrypt(plaintext, config).split("$")
    assert first[0] != second[0]
    assert first[1] != second[1]
    assert first[2] != second[2]


@pytest.mark.parametrize("value", ["", b"", bytearray()])
def test_encrypt_rejects_empty_plaintext(config, value):
    with pytest.raises(InvalidInputError, match="Invalid plain text data"):
        envelope.encrypt(value, config)


def test_encrypt_rejects_missing_plaintext(config):
    with pytest.raises(InvalidInputError, match="No plain text provided"):
        envelope.encrypt(None, config)


def test_encrypt_rejects_other_types(config):
    with pytest.raises(InvalidInputError, match="unsupported type int"):
        envelope.encrypt(12345, config)


def test_sign_token_passthrough_without_hmac_key(config):
    assert envelope.sign_token("a$b$c", config) == "a$b$c"


def test_sign_token_appends_signature(signed_config):
    signed = envelope.sign_token("a$b$c", signed_config)
    assert signed.startswith("a$b$c$")
    assert envelope.verify(signed, signed_config.hmac_key)


# ==============================================================================
# Tests: Decrypt
# ==============================================================================

def test_roundtrip_unsigned(config, plaintext):
    token = envelope.encrypt(plaintext, config)
    assert envelope.decrypt(token, config) == plaintext


def test_roundtrip_signed(signed_config, plaintext):
    token = envelope.encrypt(plaintext, signed_config)
    assert envelope.decrypt(token, signed_config) == plaintext


def test_roundtrip_unicode(config):
    message = "zaszyfrowane \U0001F512 dane"
    assert envelope.decrypt(envelope.encrypt(message, config), config) == message


def test_roundtrip_bytes(config):
    data = os.urandom(100)
    token = envelope.encrypt(data, config)
    assert envelope.decrypt_to_bytes(token, config) == data


def test_decrypt_binary_payload_as_text_fails(config):
    token = envelope.encrypt(b"\xff\xfe\xfd", config)
    with pytest.raises(DecryptionError, match="not valid UTF-8"):
        envelope.decrypt(token, config)


def test_decrypt_empty_token_skips_kdf(config):
    with patch("sealbox.security.envelope.derive_for_config") as mock_derive:
        with pytest.raises(InvalidInputError):
            envelope.decrypt("", config)
    mock_derive.assert_not_called()


def test_decrypt_too_few_fields(config):
    with pytest.raises(InvalidInputError, match="Encoded text is invalid"):
        envelope.decrypt("abc$def", config)


def test_decrypt_with_wrong_key(config, plaintext):
    token = envelope.encrypt(plaintext, config)
    other = config.replace(key=os.urandom(32))
    with pytest.raises(DecryptionError):
        envelope.decrypt(token, other)


def test_decrypt_with_bad_salt_field(config, plaintext):
    parts = envelope.encrypt(plaintext, config).split("$")
    parts[2] = "***"
    with pytest.raises(InvalidInputError, match="salt is not valid base64"):
        envelope.decrypt("$".join(parts), config)


@pytest.mark.parametrize("field", [0, 1, 2])
def test_tampered_field_is_detected(signed_config, plaintext, field):
    parts = envelope.encrypt(plaintext, signed_config).split("$")
    parts[field] = _flip(parts[field], 0)
    with pytest.raises(AuthenticationFailedError, match="HMAC signature verification failed"):
        envelope.decrypt("$".join(parts), signed_config)


def test_tampered_token_never_reaches_cipher(signed_config, plaintext):
    parts = envelope.encrypt(plaintext, signed_config).split("$")
    parts[1] = _flip(parts[1], 3)
    with patch("sealbox.security.envelope.decrypt_bytes") as mock_decrypt:
        with pytest.raises(AuthenticationFailedError):
            envelope.decrypt("$".join(parts), signed_config)
    mock_decrypt.assert_not_called()


@pytest.mark.parametrize("field", [0, 1, 2])
def test_delimiter_injected_into_signed_token_is_malformed(signed_config, plaintext, field):
    """A character turned into ``$`` changes the field count before any HMAC check."""
    parts = envelope.encrypt(plaintext, signed_config).split("$")
    parts[field] = parts[field][:2] + "$" + parts[field][3:]
    with patch("sealbox.security.envelope.hmac_digest") as mock_hmac:
        with pytest.raises(InvalidInputError, match="expected 3 or 4 fields, got 5"):
            envelope.decrypt("$".join(parts), signed_config)
    mock_hmac.assert_not_called()


def test_garbage_signature_is_a_failed_verification(signed_config, plaintext):
    parts = envelope.encrypt(plaintext, signed_config).split("$")
    parts[3] = "not-base64!"
    with pytest.raises(AuthenticationFailedError):
        envelope.decrypt("$".join(parts), signed_config)


def test_wrong_hmac_key_fails_authentication(signed_config, plaintext):
    token = envelope.encrypt(plaintext, signed_config)
    other = signed_config.replace(hmac_key=b"another signing key")
    with pytest.raises(AuthenticationFailedError):
        envelope.decrypt(token, other)


def test_policy_key_present_but_no_signature(config, signed_config, plaintext):
    token = envelope.encrypt(plaintext, config)
    with pytest.raises(AuthenticationPolicyError, match="does not include an HMAC signature"):
        envelope.decrypt(token, signed_config)


def test_policy_signature_present_but_no_key(config, signed_config, plaintext):
    token = envelope.encrypt(plaintext, signed_config)
    with pytest.raises(AuthenticationPolicyError, match="is required"):
        envelope.decrypt(token, config)


# ==============================================================================
# Tests: verify()
# ==============================================================================

def test_verify_matrix(config, signed_config, plaintext):
    unsigned = envelope.encrypt(plaintext, config)
    signed = envelope.encrypt(plaintext, signed_config)
    key = signed_config.hmac_key

    assert envelope.verify(unsigned) is True
    assert envelope.verify(signed, key) is True
    assert envelope.verify(signed, b"wrong key") is False
    with pytest.raises(AuthenticationPolicyError):
        envelope.verify(signed)
    with pytest.raises(AuthenticationPolicyError):
        envelope.verify(unsigned, key)


def test_verify_with_config(signed_config, plaintext):
    token = envelope.encrypt(plaintext, signed_config)
    assert envelope.verify_with_config(token, signed_config)


def test_verify_uses_configured_hash(plaintext):
    cfg = EnvelopeConfig("pw", hmac_key="hk", hmac_algorithm="SHA512", iterations=ITERATIONS)
    token = envelope.encrypt(plaintext, cfg)
    assert len(base64.b64decode(token.split("$")[3])) == 64
    assert envelope.verify(token, "hk", "SHA512")
    assert not envelope.verify(token, "hk", "SHA256")


# ==============================================================================
# Tests: algorithms and scenarios
# ==============================================================================

@pytest.mark.parametrize("algorithm", ["AES-128-CBC", "AES-192-CBC", "AES-256-CTR"])
def test_roundtrip_other_ciphers(algorithm, plaintext):
    cfg = EnvelopeConfig("pw", hmac_key="hk", algorithm=algorithm, iterations=ITERATIONS)
    assert envelope.decrypt(envelope.encrypt(plaintext, cfg), cfg) == plaintext


def test_scenario_unsigned_ten_thousand_iterations(plaintext):
    cfg = EnvelopeConfig(os.urandom(32), iterations=10000)
    token = envelope.encrypt(plaintext, cfg)
    assert len(token.split("$")) == 3
    assert envelope.decrypt(token, cfg) == plaintext
    assert len(plaintext) == 128


def test_scenario_signed_corrupted_ciphertext(plaintext):
    cfg = EnvelopeConfig(os.urandom(32), hmac_key=os.urandom(32), iterations=10000)
    parts = envelope.encrypt(plaintext, cfg).split("$")
    assert len(parts) == 4
    parts[0] = _flip(parts[0], 10)
    with pytest.raises(AuthenticationFailedError):
        envelope.decrypt("$".join(parts), cfg)


# ==============================================================================
# Tests: async
# ==============================================================================

def test_async_roundtrip(signed_config, plaintext):
    async def run():
        token = await envelope.encrypt_async(plaintext, signed_config)
        return await envelope.decrypt_async(token, signed_config)

    assert asyncio.run(run()) == plaintext


def test_async_concurrent_calls_are_independent(config):
    messages = [f"message {i}" for i in range(5)]

    async def run():
        tokens = await asyncio.gather(*(envelope.encrypt_async(m, config) for m in messages))
        return tokens, await asyncio.gather(*(envelope.decrypt_async(t, config) for t in tokens))

    tokens, decrypted = asyncio.run(run())
    assert decrypted == messages
    assert len(set(tokens)) == len(tokens)


def test_async_propagates_errors(config):
    with pytest.raises(InvalidInputError):
        asyncio.run(envelope.decrypt_async("", config))
