"""Tests for the step-wise front end driven by Dispatcher.tick()."""

import asyncio
import time

import httpx
import pytest

from fakes import ALLOW_RESPONSE, Recorder, drive, json_response, make_client
from moderyo.dispatch import Dispatcher
from moderyo.exceptions import NetworkError, ValidationError
from moderyo.models import OfflineMode, ProcessingMode


def _dispatched_client(handler, **settings):
    dispatcher = Dispatcher()
    client, sleep = make_client(handler, dispatcher=dispatcher, **settings)
    return client, sleep, dispatcher


def test_operation_is_pending_until_ticked():
    recorder = Recorder(json_response(ALLOW_RESPONSE))
    client, _, dispatcher = _dispatched_client(recorder)
    try:
        op = client.start_moderation("hello")
        assert not op.done
        assert op.keep_waiting
        assert op.result is None
        assert op.error is None
        assert recorder.attempts == 0
        assert dispatcher.pending == 1
        assert repr(op) == "<ModerationOperation pending>"
    finally:
        dispatcher.close()


def test_tick_driven_call_completes_with_result():
    recorder = Recorder(json_response(ALLOW_RESPONSE))
    client, _, dispatcher = _dispatched_client(recorder)
    try:
        op = client.start_moderation("hello")
        ticks = drive(dispatcher, op)
        assert ticks >= 1
        assert op.done and not op.keep_waiting
        assert not op.is_error
        assert op.result.id == "modr-ok"
        assert op.result.is_allowed()
        assert dispatcher.pending == 0
    finally:
        dispatcher.close()


def test_validation_failure_lands_on_the_handle():
    recorder = Recorder()
    client, _, dispatcher = _dispatched_client(recorder)
    try:
        op = client.start_moderation("")
        drive(dispatcher, op)
        assert op.is_error
        assert isinstance(op.error, ValidationError)
        assert op.error.field == "input"
        assert op.result is None
        assert recorder.attempts == 0
    finally:
        dispatcher.close()


def test_api_error_lands_on_the_handle():
    client, _, dispatcher = _dispatched_client(Recorder(json_response('{"message": "no"}', 401)))
    try:
        op = client.start_moderation("hello")
        drive(dispatcher, op)
        assert op.error.code == "AUTHENTICATION_ERROR"
        assert "error=" in repr(op)
    finally:
        dispatcher.close()


def test_both_front_ends_retry_identically():
    script = (json_response("{}", 503), json_response("{}", 503), json_response(ALLOW_RESPONSE))

    async_recorder = Recorder(*script)
    async_client, async_sleep = make_client(async_recorder)
    awaited = asyncio.run(async_client.moderate("same text"))

    tick_recorder = Recorder(*script)
    tick_client, tick_sleep, dispatcher = _dispatched_client(tick_recorder)
    try:
        op = tick_client.start_moderation("same text")
        drive(dispatcher, op)
    finally:
        dispatcher.close()

    assert op.result == awaited
    assert async_recorder.attempts == tick_recorder.attempts == 3
    assert async_sleep.delays == tick_sleep.delays == [1.0, 2.0]


@pytest.mark.parametrize("mode", [OfflineMode.ALLOW_ALL, OfflineMode.BLOCK_ALL])
def test_both_front_ends_fall_back_identically(mode):
    awaited_client, _ = make_client(Recorder(httpx.ConnectError("down")), offline_mode=mode)
    awaited = asyncio.run(awaited_client.moderate("hello"))

    client, _, dispatcher = _dispatched_client(Recorder(httpx.ConnectError("down")), offline_mode=mode)
    try:
        op = client.start_moderation("hello")
        drive(dispatcher, op)
    finally:
        dispatcher.close()

    ticked = op.result
    assert ticked.mode is awaited.mode is ProcessingMode.DEGRADED
    assert ticked.model == awaited.model
    assert ticked.action is awaited.action
    assert ticked.policy_decision.reason == awaited.policy_decision.reason


def test_queue_mode_network_error_on_the_handle():
    client, _, dispatcher = _dispatched_client(Recorder(httpx.ConnectError("down")), offline_mode=OfflineMode.QUEUE)
    try:
        op = client.start_moderation("hello")
        drive(dispatcher, op)
        assert isinstance(op.error, NetworkError)
    finally:
        dispatcher.close()


def test_tick_never_blocks_and_cancel_settles_handle():
    async def slow_handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(3600)
        return json_response(ALLOW_RESPONSE)

    client, _, dispatcher = _dispatched_client(slow_handler)
    try:
        op = client.start_moderation("hello")
        started = time.monotonic()
        for _ in range(20):
            dispatcher.tick()
        assert time.monotonic() - started < 5.0
        assert op.keep_waiting

        op.cancel()
        drive(dispatcher, op)
        assert op.cancelled
        assert op.result is None
        assert op.error is None
        assert repr(op) == "<ModerationOperation cancelled>"
    finally:
        dispatcher.close()


def test_operations_progress_together():
    client, _, dispatcher = _dispatched_client(Recorder(json_response(ALLOW_RESPONSE)))
    try:
        ops = [client.start_moderation(f"text {i}") for i in range(3)]
        for _ in range(10_000):
            if all(op.done for op in ops):
                break
            dispatcher.tick()
        assert all(op.result.is_allowed() for op in ops)
    finally:
        dispatcher.close()


def test_generator_scheduler_can_yield_from_operation():
    client, _, dispatcher = _dispatched_client(Recorder(json_response(ALLOW_RESPONSE)))

    def routine(op):
        yield from op
        return op.result

    try:
        gen = routine(client.start_moderation("hello"))
        result = None
        for _ in range(10_000):
            try:
                next(gen)
            except StopIteration as stop:
                result = stop.value
                break
            dispatcher.tick()
        assert result is not None
        assert result.id == "modr-ok"
    finally:
        dispatcher.close()


def test_start_batch_runs_items_in_order():
    client, _, dispatcher = _dispatched_client(Recorder(json_response(ALLOW_RESPONSE)))
    try:
        op = client.start_batch(["first", "", "third"])
        drive(dispatcher, op)
        batch = op.result
        assert len(batch) == 3
        assert [r.is_blocked() for r in batch] == [False, True, False]
        assert batch[1].model == "error"
    finally:
        dispatcher.close()


def test_default_dispatcher_is_process_wide():
    assert Dispatcher.default() is Dispatcher.default()
    client, _ = make_client(Recorder())
    assert client.dispatcher is Dispatcher.default()
    assert not Dispatcher.default().closed


def test_close_cancels_pending_and_rejects_new_work():
    client, _, dispatcher = _dispatched_client(Recorder())
    op = client.start_moderation("hello")
    dispatcher.close()
    assert dispatcher.closed
    assert op.cancelled
    assert dispatcher.pending == 0
    with pytest.raises(RuntimeError):
        dispatcher.tick()
    with pytest.raises(RuntimeError):
        client.start_moderation("again")
    dispatcher.close()
