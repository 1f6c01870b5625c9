"""HTTP exchange with retry and exponential backoff.

One logical request is up to ``max_retries + 1`` attempts.  Only 429 and
5xx responses, and unexpected failures inside an attempt, are retried.
A connectivity failure raises :class:`NetworkError` at once so the
client's offline policy can decide what to do with it.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

import httpx

from moderyo.exceptions import (
    ApiError,
    AuthenticationError,
    ModeryoError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    RetryExhaustedError,
    ValidationError,
)
from moderyo.protocol.codec import ErrorBody, decode_error

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60.0

SleepFn = Callable[[float], Awaitable[None]]


# ---------------------------------------------------------------------------
# Response classification
# ---------------------------------------------------------------------------


def _retry_after(response: httpx.Response, body: ErrorBody) -> float:
    header = response.headers.get("Retry-After")
    if header is not None:
        try:
            value = float(header)
        except ValueError:
            value = math.nan
        if math.isfinite(value):
            return max(value, 0.0)
    if body.retry_after is not None and math.isfinite(body.retry_after):
        return max(body.retry_after, 0.0)
    return DEFAULT_RETRY_AFTER


def _int_header(response: httpx.Response, name: str) -> int:
    try:
        return int(response.headers.get(name, "0"))
    except ValueError:
        return 0


def classify_response(response: httpx.Response) -> ModeryoError:
    """Map a non-2xx response to the matching error kind."""
    status = response.status_code
    body = decode_error(response.text)
    message = body.message or response.reason_phrase or "Unknown error"
    request_id = response.headers.get("X-Request-Id")

    if status in (400, 422):
        return ValidationError(message, status_code=status, request_id=request_id)
    if status == 401:
        return AuthenticationError(message, request_id=request_id)
    if status == 402:
        return QuotaExceededError(message, request_id=request_id)
    if status == 429:
        return RateLimitError(
            message,
            retry_after=_retry_after(response, body),
            limit=_int_header(response, "X-RateLimit-Limit"),
            remaining=_int_header(response, "X-RateLimit-Remaining"),
            request_id=request_id,
        )
    return ApiError(message, status_code=status, request_id=request_id)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class RetryingTransport:
    """Runs one logical request as a bounded series of HTTP attempts.

    Parameters
    ----------
    base_url : str
        Service root, without a trailing slash.
    timeout : float
        Per-attempt timeout in seconds, applied by httpx to each phase
        (connect, read, write, pool) rather than to the whole exchange.
    max_retries : int
        Retries after the first attempt.
    retry_delay : float
        Base delay for exponential backoff, in seconds.
    transport : httpx.AsyncBaseTransport | None
        Optional httpx transport, e.g. ``httpx.MockTransport`` in tests.
    sleep : callable
        Awaitable used for backoff delays; ``asyncio.sleep`` by default.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay after a failed 0-based *attempt*."""
        return self.retry_delay * (2 ** attempt)

    async def send(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        body: Optional[str] = None,
    ) -> str:
        """Return the body of the first 2xx response.

        Raises the classified error for non-retryable statuses, the last
        :class:`RateLimitError` once retries run out on 429, and
        :class:`RetryExhaustedError` once they run out on anything else.
        """
        url = f"{self.base_url}{path}"
        content = body.encode("utf-8") if body is not None else None
        attempts = self.max_retries + 1
        last_error: Optional[BaseException] = None
        last_status: Optional[int] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(attempts):
                has_retry = attempt < self.max_retries
                logger.debug("%s %s (attempt %d/%d)", method, url, attempt + 1, attempts)

                try:
                    response = await client.request(method, url, content=content, headers=headers)
                except httpx.TimeoutException as exc:
                    raise NetworkError(f"Request timed out: {exc}", is_timeout=True) from exc
                except (httpx.NetworkError, httpx.RemoteProtocolError) as exc:
                    raise NetworkError(str(exc) or "Could not reach the moderation service") from exc
                except Exception as exc:
                    last_error, last_status = exc, None
                    if has_retry:
                        delay = self.backoff_delay(attempt)
                        logger.warning("Request failed (%s). Retrying in %.2fs...", exc, delay)
                        await self._sleep(delay)
                        continue
                    break

                if response.is_success:
                    return response.text

                error = classify_response(response)

                if isinstance(error, RateLimitError):
                    if not has_retry:
                        raise error
                    logger.warning("Rate limited. Retrying in %.2fs...", error.retry_after)
                    await self._sleep(error.retry_after)
                    continue

                if response.status_code >= 500:
                    last_error, last_status = error, response.status_code
                    if has_retry:
                        delay = self.backoff_delay(attempt)
                        logger.warning(
                            "Server error %d. Retrying in %.2fs...", response.status_code, delay
                        )
                        await self._sleep(delay)
                        continue
                    break

                raise error

        raise RetryExhaustedError(
            f"Request failed after {attempts} attempt(s): {last_error}",
            attempts=attempts,
            status_code=last_status,
        ) from last_error
