"""Tests for the offline fallback policy."""

import asyncio

import httpx
import pytest

from fakes import Recorder, json_response, make_client
from moderyo.exceptions import AuthenticationError, NetworkError
from moderyo.models import CategoryKey, OfflineMode, ProcessingMode
from moderyo.offline import (
    LOCAL_FILTER_REASON,
    OFFLINE_REASON,
    OfflineFallbackPolicy,
    tokenize,
)


def _offline_client(mode: OfflineMode, words=()):
    recorder = Recorder(httpx.ConnectError("unreachable"))
    client, _ = make_client(recorder, offline_mode=mode, local_filter_words=list(words))
    return client, recorder


def test_tokenize_splits_on_fixed_delimiters():
    assert tokenize("you are\ta badword!\r\nok?yes.no,maybe") == [
        "you", "are", "a", "badword", "ok", "yes", "no", "maybe",
    ]


def test_allow_all_returns_degraded_allow():
    client, recorder = _offline_client(OfflineMode.ALLOW_ALL)
    result = asyncio.run(client.moderate("anything at all"))
    assert result.is_allowed()
    assert result.mode is ProcessingMode.DEGRADED
    assert result.model == "offline"
    assert result.policy_decision.decision == "ALLOW"
    assert result.policy_decision.reason == OFFLINE_REASON
    assert not result.categories.has_any()
    assert recorder.attempts == 1


@pytest.mark.parametrize("text", ["hello friend", "you are a badword!", "x" * 10_000])
def test_block_all_always_blocks(text):
    client, _ = _offline_client(OfflineMode.BLOCK_ALL, ["badword"])
    result = asyncio.run(client.moderate(text))
    assert result.is_blocked()
    assert result.flagged is True
    assert result.mode is ProcessingMode.DEGRADED
    assert result.policy_decision.reason == OFFLINE_REASON


def test_local_filter_blocks_matching_word():
    client, _ = _offline_client(OfflineMode.USE_LOCAL_FILTER, ["badword"])
    result = asyncio.run(client.moderate("you are a badword!"))
    assert result.is_blocked()
    assert result.model == "local-filter"
    assert result.categories[CategoryKey.HARASSMENT] is True
    assert result.category_scores[CategoryKey.HARASSMENT] == 1.0
    assert result.scores.toxicity == 1.0
    assert result.policy_decision.reason == LOCAL_FILTER_REASON
    assert result.mode is ProcessingMode.DEGRADED


def test_local_filter_allows_clean_text():
    client, _ = _offline_client(OfflineMode.USE_LOCAL_FILTER, ["badword"])
    result = asyncio.run(client.moderate("hello friend"))
    assert result.is_allowed()
    assert result.model == "offline"
    assert result.mode is ProcessingMode.DEGRADED


def test_local_filter_ignores_case():
    policy = OfflineFallbackPolicy(OfflineMode.USE_LOCAL_FILTER, ["BadWord"])
    assert policy.matches_filter("BADWORD.")
    assert policy.matches_filter("what a badword")


def test_local_filter_does_not_split_on_other_punctuation():
    policy = OfflineFallbackPolicy(OfflineMode.USE_LOCAL_FILTER, ["badword"])
    assert not policy.matches_filter('"badword"')
    assert not policy.matches_filter("badword—really")
    assert not policy.matches_filter("badwords")


def test_server_disconnect_triggers_fallback():
    recorder = Recorder(httpx.RemoteProtocolError("Server disconnected without sending a response."))
    client, _ = make_client(recorder, offline_mode=OfflineMode.BLOCK_ALL)
    result = asyncio.run(client.moderate("hello"))
    assert result.is_blocked()
    assert result.mode is ProcessingMode.DEGRADED


def test_queue_mode_reraises_network_error():
    client, _ = _offline_client(OfflineMode.QUEUE)
    with pytest.raises(NetworkError):
        asyncio.run(client.moderate("hello"))


def test_api_errors_are_never_absorbed():
    client, _ = make_client(Recorder(json_response("{}", 401)), offline_mode=OfflineMode.BLOCK_ALL)
    with pytest.raises(AuthenticationError):
        asyncio.run(client.moderate("hello"))


def test_resolve_in_queue_mode_raises_given_error():
    error = NetworkError("gone")
    with pytest.raises(NetworkError) as exc:
        OfflineFallbackPolicy(OfflineMode.QUEUE).resolve("x", error)
    assert exc.value is error
