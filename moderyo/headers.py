"""Header policy: per-call options over client defaults.

An explicit option always wins, a client default fills the gap, and a
header is left out only when neither supplies a value.  The debug header
is sent only when the merged value is exactly true.
"""

from __future__ import annotations

from typing import Optional

from moderyo.models import ModerationOptions
from moderyo.version import __version__

SDK_NAME = "moderyo-sdk-python"
USER_AGENT = f"{SDK_NAME}/{__version__}"

MODE_HEADER = "X-Moderyo-Mode"
RISK_HEADER = "X-Moderyo-Risk"
DEBUG_HEADER = "X-Moderyo-Debug"
PLAYER_ID_HEADER = "X-Moderyo-Player-Id"


def merge_options(
    options: Optional[ModerationOptions],
    defaults: Optional[ModerationOptions],
) -> ModerationOptions:
    """Return the effective options for one call."""
    options = options or ModerationOptions()
    defaults = defaults or ModerationOptions()
    return ModerationOptions(
        mode=options.mode if options.mode is not None else defaults.mode,
        risk=options.risk if options.risk is not None else defaults.risk,
        debug=options.debug if options.debug is not None else defaults.debug,
        player_id=options.player_id or defaults.player_id,
    )


def build_headers(
    api_key: str,
    options: Optional[ModerationOptions] = None,
    defaults: Optional[ModerationOptions] = None,
) -> dict[str, str]:
    """Return the full header set for a request."""
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }

    effective = merge_options(options, defaults)
    if effective.mode is not None:
        headers[MODE_HEADER] = effective.mode.value
    if effective.risk is not None:
        headers[RISK_HEADER] = effective.risk.value
    if effective.debug is True:
        headers[DEBUG_HEADER] = "true"
    if effective.player_id:
        headers[PLAYER_ID_HEADER] = effective.player_id
    return headers
