"""Tests for meshhub.core.errors classification."""

import pytest

from meshhub.core.errors import (
    AuthError,
    ClientError,
    HttpError,
    QuotaExceeded,
    TaskError,
    TaskTimeoutError,
    TransportError,
)


@pytest.mark.parametrize(
    ("status", "error_class", "retryable"),
    [
        (400, "permanent", False),
        (401, "permanent", False),
        (404, "permanent", False),
        (429, "rate_limit", True),
        (500, "server", True),
        (503, "server", True),
    ],
)
def test_http_error_classification(status, error_class, retryable):
    err = HttpError(status, "body")
    assert err.error_class == error_class
    assert err.retryable is retryable


def test_http_error_message_without_reason():
    assert str(HttpError(418, "teapot")) == "418 :: teapot"


def test_network_error_flag():
    assert TransportError("x").is_network_error is True
    assert AuthError().is_network_error is False
    assert AuthError("down", error_class="connection").is_network_error is True
    assert TaskError("x").is_network_error is False


def test_task_timeout_is_a_timeout():
    err = TaskTimeoutError("t-1", 30)
    assert isinstance(err, TimeoutError)
    assert isinstance(err, ClientError)
    assert "t-1" in str(err)
    assert err.error_class == "timeout"


def test_quota_exceeded_defaults():
    err = QuotaExceeded(3)
    assert str(err) == "Free limit reached"
    assert err.limit == 3
    assert err.retryable is False


def test_all_errors_share_base():
    for err in (TransportError("x"), AuthError(), HttpError(500, ""), TaskError("x"), QuotaExceeded(1)):
        assert isinstance(err, ClientError)
