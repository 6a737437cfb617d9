"""Unit tests for the logging helper."""

import logging

import pytest
from unittest.mock import patch

from sealbox.core.exceptions import AuthenticationFailedError
from sealbox.security.codec import Envelope
from sealbox.logging_config import configure_logging


def test_configure_logging_sets_levels():
    with patch("sealbox.logging_config.logging.basicConfig") as mock_basic:
        configure_logging(logging.DEBUG)

    kwargs = mock_basic.call_args.kwargs
    assert kwargs["level"] == logging.DEBUG
    assert "%(name)s" in kwargs["format"]
    assert logging.getLogger("sealbox").level == logging.DEBUG


def test_hmac_failure_is_logged(caplog):
    signer = Envelope("pw", hmac_key="one", iterations=100)
    other = Envelope("pw", hmac_key="two", iterations=100)
    token = signer.encrypt("payload")

    with caplog.at_level(logging.WARNING, logger="sealbox"):
        with pytest.raises(AuthenticationFailedError):
            other.decrypt(token)
    assert "HMAC signature verification failed" in caplog.text
