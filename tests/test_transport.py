"""Tests for the retrying transport and status classification."""

import asyncio

import httpx
import pytest

from fakes import Recorder, RecordingSleep, json_response
from moderyo.exceptions import (
    ApiError,
    AuthenticationError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    RetryExhaustedError,
    ValidationError,
)
from moderyo.transport import RetryingTransport


def _send(recorder: Recorder, max_retries: int = 3, retry_delay: float = 1.0):
    sleep = RecordingSleep()
    transport = RetryingTransport(
        base_url="https://api.test",
        max_retries=max_retries,
        retry_delay=retry_delay,
        transport=httpx.MockTransport(recorder),
        sleep=sleep,
    )
    outcome = asyncio.run(transport.send("POST", "/v1/moderation", {"Authorization": "Bearer k"}, '{"input":"x"}'))
    return outcome, sleep


def _send_error(recorder: Recorder, **kwargs):
    sleep = RecordingSleep()
    transport = RetryingTransport(
        base_url="https://api.test",
        transport=httpx.MockTransport(recorder),
        sleep=sleep,
        **kwargs,
    )
    with pytest.raises(Exception) as exc:
        asyncio.run(transport.send("POST", "/v1/moderation", {}, "{}"))
    return exc.value, sleep


def test_success_returns_body_on_first_attempt():
    recorder = Recorder(json_response('{"id": "1"}'))
    body, sleep = _send(recorder)
    assert body == '{"id": "1"}'
    assert recorder.attempts == 1
    assert sleep.delays == []
    assert recorder.requests[0].url == "https://api.test/v1/moderation"
    assert recorder.requests[0].content == b'{"input":"x"}'


def test_server_errors_use_exponential_backoff_until_success():
    recorder = Recorder(json_response("{}", 500), json_response("{}", 503), json_response('{"id": "ok"}'))
    body, sleep = _send(recorder, retry_delay=0.5)
    assert body == '{"id": "ok"}'
    assert recorder.attempts == 3
    assert sleep.delays == [0.5, 1.0]


def test_persistent_503_makes_max_retries_plus_one_attempts():
    recorder = Recorder(json_response('{"message": "down"}', 503))
    error, sleep = _send_error(recorder, max_retries=3, retry_delay=1.0)
    assert isinstance(error, RetryExhaustedError)
    assert error.code == "RETRY_EXHAUSTED"
    assert error.status_code == 503
    assert error.attempts == 4
    assert isinstance(error.__cause__, ApiError)
    assert error.__cause__.message == "down"
    assert recorder.attempts == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


def test_zero_retries_means_single_attempt():
    recorder = Recorder(json_response("{}", 502))
    error, sleep = _send_error(recorder, max_retries=0)
    assert isinstance(error, RetryExhaustedError)
    assert recorder.attempts == 1
    assert sleep.delays == []


def test_rate_limit_waits_retry_after_header():
    recorder = Recorder(
        json_response("{}", 429, headers={"Retry-After": "5"}),
        json_response('{"id": "ok"}'),
    )
    body, sleep = _send(recorder)
    assert body == '{"id": "ok"}'
    assert sleep.delays == [5.0]


def test_rate_limit_falls_back_to_body_then_default():
    recorder = Recorder(
        json_response('{"retry_after": 2.5}', 429),
        json_response("{}", 429, headers={"Retry-After": "soon"}),
        json_response('{"id": "ok"}'),
    )
    _, sleep = _send(recorder)
    assert sleep.delays == [2.5, 60.0]


@pytest.mark.parametrize("value", ["inf", "-inf", "nan", "1e999"])
def test_non_finite_retry_after_header_uses_default(value):
    recorder = Recorder(
        json_response("{}", 429, headers={"Retry-After": value}),
        json_response('{"id": "ok"}'),
    )
    _, sleep = _send(recorder)
    assert sleep.delays == [60.0]


def test_non_finite_retry_after_header_falls_back_to_body():
    recorder = Recorder(
        json_response('{"retry_after": 3}', 429, headers={"Retry-After": "inf"}),
        json_response('{"retry_after": 1e400}', 429),
        json_response('{"id": "ok"}'),
    )
    _, sleep = _send(recorder)
    assert sleep.delays == [3.0, 60.0]


def test_rate_limit_surfaces_when_retries_run_out():
    recorder = Recorder(
        json_response(
            '{"message": "slow down"}',
            429,
            headers={"Retry-After": "1", "X-RateLimit-Limit": "100", "X-RateLimit-Remaining": "0"},
        )
    )
    error, sleep = _send_error(recorder, max_retries=2)
    assert isinstance(error, RateLimitError)
    assert error.retry_after == 1.0
    assert error.limit == 100
    assert error.remaining == 0
    assert error.status_code == 429
    assert recorder.attempts == 3
    assert sleep.delays == [1.0, 1.0]


@pytest.mark.parametrize(
    "status, kind",
    [
        (400, ValidationError),
        (422, ValidationError),
        (401, AuthenticationError),
        (402, QuotaExceededError),
        (404, ApiError),
        (418, ApiError),
    ],
)
def test_fatal_statuses_are_not_retried(status, kind):
    recorder = Recorder(json_response('{"message": "nope"}', status, headers={"X-Request-Id": "req-1"}))
    error, sleep = _send_error(recorder)
    assert type(error) is kind
    assert error.status_code == status
    assert error.message == "nope"
    assert error.request_id == "req-1"
    assert recorder.attempts == 1
    assert sleep.delays == []


def test_error_message_falls_back_to_reason_phrase():
    recorder = Recorder(json_response("", 401))
    error, _ = _send_error(recorder)
    assert error.message == "Unauthorized"
    assert error.code == "AUTHENTICATION_ERROR"


def test_connect_error_is_network_error_without_retry():
    recorder = Recorder(httpx.ConnectError("connection refused"))
    error, sleep = _send_error(recorder)
    assert isinstance(error, NetworkError)
    assert error.code == "NETWORK_ERROR"
    assert error.is_timeout is False
    assert recorder.attempts == 1
    assert sleep.delays == []


def test_server_disconnect_is_network_error_without_retry():
    recorder = Recorder(httpx.RemoteProtocolError("Server disconnected without sending a response."))
    error, sleep = _send_error(recorder)
    assert isinstance(error, NetworkError)
    assert error.is_timeout is False
    assert recorder.attempts == 1
    assert sleep.delays == []


def test_timeout_is_network_error():
    recorder = Recorder(httpx.ReadTimeout("timed out"))
    error, _ = _send_error(recorder)
    assert isinstance(error, NetworkError)
    assert error.is_timeout is True
    assert error.code == "TIMEOUT_ERROR"


def test_unexpected_failure_is_retried_then_wrapped():
    recorder = Recorder(RuntimeError("boom"))
    error, sleep = _send_error(recorder, max_retries=2, retry_delay=0.25)
    assert isinstance(error, RetryExhaustedError)
    assert isinstance(error.__cause__, RuntimeError)
    assert "boom" in error.message
    assert error.status_code is None
    assert recorder.attempts == 3
    assert sleep.delays == [0.25, 0.5]


def test_unexpected_failure_then_success():
    recorder = Recorder(RuntimeError("flaky"), json_response('{"id": "ok"}'))
    body, sleep = _send(recorder)
    assert body == '{"id": "ok"}'
    assert sleep.delays == [1.0]
