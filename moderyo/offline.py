"""Synthetic results for when the moderation service cannot be reached.

Only a :class:`~moderyo.exceptions.NetworkError` ever gets here; API
errors always reach the caller.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from moderyo.exceptions import NetworkError
from moderyo.ids import generate_id
from moderyo.models import (
    Categories,
    CategoryKey,
    CategoryScores,
    Decision,
    ModerationResult,
    OfflineMode,
    PolicyDecision,
    ProcessingMode,
    SimplifiedScores,
)

logger = logging.getLogger(__name__)

OFFLINE_REASON = "offline — service unavailable"
LOCAL_FILTER_REASON = "blocked by local word filter"

# Words glued to any other punctuation (quotes, dashes, ...) stay whole
# and will not match a filter entry.
_TOKEN_DELIMITERS = re.compile(r"[ \t\n\r.,!?]+")


def tokenize(text: str) -> list[str]:
    return [token for token in _TOKEN_DELIMITERS.split(text) if token]


def offline_result(decision: Decision) -> ModerationResult:
    blocked = decision is Decision.BLOCK
    return ModerationResult(
        id=generate_id(),
        model="offline",
        flagged=blocked,
        policy_decision=PolicyDecision(decision=decision.value, reason=OFFLINE_REASON),
        mode=ProcessingMode.DEGRADED,
    )


def local_filter_block() -> ModerationResult:
    return ModerationResult(
        id=generate_id(),
        model="local-filter",
        flagged=True,
        categories=Categories.from_mapping({CategoryKey.HARASSMENT: True}),
        category_scores=CategoryScores.from_mapping({CategoryKey.HARASSMENT: 1.0}),
        scores=SimplifiedScores(toxicity=1.0),
        policy_decision=PolicyDecision(decision=Decision.BLOCK.value, reason=LOCAL_FILTER_REASON),
        mode=ProcessingMode.DEGRADED,
    )


class OfflineFallbackPolicy:
    """Turns a connectivity failure into a degraded result.

    ``QUEUE`` disables the fallback and re-raises the failure.
    """

    def __init__(self, mode: OfflineMode, filter_words: Iterable[str] = ()) -> None:
        self.mode = mode
        self.filter_words = frozenset(w.lower() for w in filter_words)

    def matches_filter(self, text: str) -> bool:
        """True if any token of *text* is a filter word, ignoring case."""
        return any(token.lower() in self.filter_words for token in tokenize(text))

    def resolve(self, text: str, error: NetworkError) -> ModerationResult:
        if self.mode is OfflineMode.QUEUE:
            raise error

        logger.warning("Moderation service unreachable (%s); offline mode %s", error, self.mode.value)
        if self.mode is OfflineMode.BLOCK_ALL:
            return offline_result(Decision.BLOCK)
        if self.mode is OfflineMode.USE_LOCAL_FILTER and self.matches_filter(text):
            return local_filter_block()
        return offline_result(Decision.ALLOW)
