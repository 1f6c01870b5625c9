"""Identifier synthesis for results the server did not name."""

from __future__ import annotations

import itertools
import time
import uuid

_sequence = itertools.count()


def generate_id() -> str:
    """Return an id like ``modr-18f3a2b4c1d-0007-1a2b3c4d``.

    Millisecond clock, a per-process sequence and a random suffix, so ids
    never repeat within one process even when generated in the same
    millisecond.
    """
    millis = int(time.time() * 1000)
    return f"modr-{millis:x}-{next(_sequence):04x}-{uuid.uuid4().hex[:8]}"
