"""Moderyo moderation client.

One core coroutine does the work for every call: validate, encode, send
with retries, decode, or fall back to the offline policy.  It is exposed
two ways:

* ``await client.moderate(...)`` for asyncio code.
* ``client.start_moderation(...)`` returns a :class:`ModerationOperation`
  that a :class:`Dispatcher` advances one step per ``tick()``, for hosts
  driven by a frame loop.

Both run the same coroutine, so decisions, retries and fallbacks are
identical whichever front end is used.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Union

import httpx

from moderyo.config import ModeryoConfig
from moderyo.dispatch import Dispatcher, ModerationOperation
from moderyo.exceptions import ModeryoError, NetworkError
from moderyo.headers import build_headers, merge_options
from moderyo.ids import generate_id
from moderyo.models import (
    BatchModerationResult,
    Decision,
    EnforcementMode,
    ModerationOptions,
    ModerationRequest,
    ModerationResult,
    PolicyDecision,
    ProcessingMode,
)
from moderyo.offline import OfflineFallbackPolicy
from moderyo.protocol.codec import decode_response, encode_request
from moderyo.transport import RetryingTransport, SleepFn

logger = logging.getLogger(__name__)

MODERATION_PATH = "/v1/moderation"
HEALTH_PATH = "/health"

RequestLike = Union[str, ModerationRequest]


def _as_request(request: RequestLike) -> ModerationRequest:
    if isinstance(request, ModerationRequest):
        return request
    return ModerationRequest.of(request)


def error_result(error: ModeryoError) -> ModerationResult:
    """BLOCK result standing in for a batch item that raised *error*."""
    return ModerationResult(
        id=generate_id(),
        model="error",
        flagged=True,
        policy_decision=PolicyDecision(decision=Decision.BLOCK.value, reason=f"Error: {error.message}"),
    )


class ModeryoClient:
    """Client for the Moderyo moderation API.

    Parameters
    ----------
    config : ModeryoConfig | str
        Full configuration, or just an API key with every other setting
        at its default.
    transport : httpx.AsyncBaseTransport | None
        Optional httpx transport (``httpx.MockTransport`` in tests).
    sleep : callable
        Awaitable used for retry delays.
    dispatcher : Dispatcher | None
        Driver for :meth:`start_moderation`; the process-wide
        :meth:`Dispatcher.default` when omitted.

    The client keeps no per-request state, so concurrent calls through
    :meth:`moderate` do not interfere.
    """

    def __init__(
        self,
        config: Union[ModeryoConfig, str],
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
        dispatcher: Optional[Dispatcher] = None,
    ) -> None:
        if isinstance(config, str):
            config = ModeryoConfig.create(api_key=config)
        self.config = config
        self._defaults = ModerationOptions(mode=config.default_mode, risk=config.default_risk)
        self._transport = RetryingTransport(
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            transport=transport,
            sleep=sleep,
        )
        self._offline = OfflineFallbackPolicy(config.offline_mode, config.local_filter_words)
        self._dispatcher = dispatcher

    def __repr__(self) -> str:
        return f"ModeryoClient(base_url={self.config.base_url!r}, offline_mode={self.config.offline_mode.value!r})"

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher or Dispatcher.default()

    # -- core ----------------------------------------------------------------

    async def _run(
        self,
        request: RequestLike,
        options: Optional[ModerationOptions],
    ) -> ModerationResult:
        request = _as_request(request)
        request.validate()

        body = encode_request(request)
        headers = build_headers(self.config.api_key, options, self._defaults)
        effective = merge_options(options, self._defaults)
        mode = ProcessingMode.SHADOW if effective.mode is EnforcementMode.SHADOW else ProcessingMode.NORMAL

        try:
            text = await self._transport.send("POST", MODERATION_PATH, headers, body)
        except NetworkError as exc:
            return self._offline.resolve(request.input, exc)
        return decode_response(text, default_model=self.config.default_model, mode=mode)

    # -- awaitable front end -------------------------------------------------

    async def moderate(
        self,
        request: RequestLike,
        options: Optional[ModerationOptions] = None,
    ) -> ModerationResult:
        """Moderate one input.

        Raises :class:`~moderyo.exceptions.ValidationError` before any
        network attempt when the input is empty or too long.
        """
        return await self._run(request, options)

    async def moderate_batch(
        self,
        inputs: Iterable[RequestLike],
        options: Optional[ModerationOptions] = None,
    ) -> BatchModerationResult:
        """Moderate *inputs* one after another, never concurrently.

        A failing item becomes a BLOCK result from :func:`error_result`;
        the batch always has one result per input, in input order.
        """
        results: list[ModerationResult] = []
        for index, item in enumerate(inputs):
            try:
                results.append(await self.moderate(item, options))
            except ModeryoError as exc:
                logger.warning("Batch item %d failed: %s", index, exc.message)
                results.append(error_result(exc))
        return BatchModerationResult(tuple(results))

    async def health_check(self) -> bool:
        """Return True if ``GET /health`` answers 2xx; never raises."""
        try:
            await self._transport.send("GET", HEALTH_PATH, build_headers(self.config.api_key))
        except Exception as exc:
            logger.debug("Health check failed: %s", exc)
            return False
        return True

    # -- step-wise front end -------------------------------------------------

    def start_moderation(
        self,
        request: RequestLike,
        options: Optional[ModerationOptions] = None,
    ) -> ModerationOperation[ModerationResult]:
        """Begin a moderation call and return its handle immediately.

        Nothing runs until the dispatcher ticks.  Validation failures
        surface as the handle's ``error``.
        """
        return self.dispatcher.submit(self._run(request, options))

    def start_batch(
        self,
        inputs: Iterable[RequestLike],
        options: Optional[ModerationOptions] = None,
    ) -> ModerationOperation[BatchModerationResult]:
        """Step-wise counterpart of :meth:`moderate_batch`."""
        return self.dispatcher.submit(self.moderate_batch(list(inputs), options))
