"""Field-scoped scanning of JSON text.

Only the direct members of one object are visited at a time; nested
objects and arrays are skipped as opaque spans by tracking bracket depth
outside string literals.  Values are handed back as raw text and turned
into Python values only when a typed getter asks for them, so fields the
decoder does not know about cost a skip and nothing more.

Malformed input never raises: scanning stops at the first structural
surprise and whatever was read up to that point is kept.
"""

from __future__ import annotations

import math
import re
from string import hexdigits
from typing import Iterator, Optional

_WS = " \t\r\n"
_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?\Z")

_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}

_ENCODE_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}


# ---------------------------------------------------------------------------
# String literals
# ---------------------------------------------------------------------------


def escape(text: str) -> str:
    """Escape *text* for use inside a JSON string literal."""
    out: list[str] = []
    for ch in text:
        replacement = _ENCODE_ESCAPES.get(ch)
        if replacement is not None:
            out.append(replacement)
        elif ch < " ":
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return "".join(out)


def _hex4(body: str, start: int) -> Optional[int]:
    digits = body[start:start + 4]
    if len(digits) == 4 and all(c in hexdigits for c in digits):
        return int(digits, 16)
    return None


def unescape(body: str) -> str:
    """Decode the escapes in the body of a JSON string literal."""
    if "\\" not in body:
        return body
    out: list[str] = []
    i, n = 0, len(body)
    while i < n:
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= n:
            break
        esc = body[i + 1]
        if esc != "u":
            out.append(_ESCAPES.get(esc, esc))
            i += 2
            continue
        code = _hex4(body, i + 2)
        if code is None:
            out.append(body[i:i + 2])
            i += 2
            continue
        i += 6
        # Surrogate pair
        if 0xD800 <= code <= 0xDBFF and body.startswith("\\u", i):
            low = _hex4(body, i + 2)
            if low is not None and 0xDC00 <= low <= 0xDFFF:
                code = 0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)
                i += 6
        out.append(chr(code))
    return "".join(out)


# ---------------------------------------------------------------------------
# Span scanning
# ---------------------------------------------------------------------------


def _skip_ws(text: str, pos: int) -> int:
    n = len(text)
    while pos < n and text[pos] in _WS:
        pos += 1
    return pos


def _string_end(text: str, pos: int) -> int:
    """*pos* is an opening quote; return the index just past its closing quote."""
    n = len(text)
    pos += 1
    while pos < n:
        ch = text[pos]
        if ch == "\\":
            pos += 2
        elif ch == '"':
            return pos + 1
        else:
            pos += 1
    return n


def _value_end(text: str, pos: int) -> int:
    """Return the index just past the value starting at *pos*."""
    n = len(text)
    if pos >= n:
        return pos
    ch = text[pos]
    if ch == '"':
        return _string_end(text, pos)
    if ch in "{[":
        depth = 0
        while pos < n:
            ch = text[pos]
            if ch == '"':
                pos = _string_end(text, pos)
                continue
            if ch in "{[":
                depth += 1
            elif ch in "}]":
                depth -= 1
                if depth == 0:
                    return pos + 1
            pos += 1
        return n
    while pos < n and text[pos] not in ",}]" and text[pos] not in _WS:
        pos += 1
    return pos


def iter_members(text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(key, raw_value)`` for each direct member of a JSON object."""
    n = len(text)
    pos = _skip_ws(text, 0)
    if pos >= n or text[pos] != "{":
        return
    pos += 1
    while True:
        pos = _skip_ws(text, pos)
        if pos >= n or text[pos] != '"':
            return
        key_end = _string_end(text, pos)
        key = unescape(text[pos + 1:key_end - 1])
        pos = _skip_ws(text, key_end)
        if pos >= n or text[pos] != ":":
            return
        pos = _skip_ws(text, pos + 1)
        end = _value_end(text, pos)
        if end == pos:
            return
        yield key, text[pos:end]
        pos = _skip_ws(text, end)
        if pos >= n or text[pos] != ",":
            return
        pos += 1


def iter_elements(text: str) -> Iterator[str]:
    """Yield the raw text of each top-level element of a JSON array."""
    n = len(text)
    pos = _skip_ws(text, 0)
    if pos >= n or text[pos] != "[":
        return
    pos += 1
    while True:
        pos = _skip_ws(text, pos)
        if pos >= n or text[pos] == "]":
            return
        end = _value_end(text, pos)
        if end == pos:
            return
        yield text[pos:end]
        pos = _skip_ws(text, end)
        if pos >= n or text[pos] != ",":
            return
        pos += 1


# ---------------------------------------------------------------------------
# Raw token conversion
# ---------------------------------------------------------------------------


def as_string(raw: Optional[str]) -> Optional[str]:
    if raw is None or len(raw) < 2 or raw[0] != '"' or raw[-1] != '"':
        return None
    return unescape(raw[1:-1])


def as_number(raw: Optional[str]) -> Optional[float]:
    if raw is None or not _NUMBER.match(raw):
        return None
    value = float(raw)
    # Out-of-range literals such as 1e400 overflow to inf.
    return value if math.isfinite(value) else None


def as_bool(raw: Optional[str]) -> Optional[bool]:
    if raw == "true":
        return True
    if raw == "false":
        return False
    return None


class ScannedObject:
    """Typed access to the direct members of one JSON object.

    Missing or mistyped members come back as the caller's default.
    """

    __slots__ = ("_members",)

    def __init__(self, text: str) -> None:
        # Later duplicates win, as with a full parser.
        self._members = dict(iter_members(text))

    def __contains__(self, key: str) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._members)

    def keys(self) -> list[str]:
        return list(self._members)

    def raw(self, key: str) -> Optional[str]:
        return self._members.get(key)

    def optional_string(self, key: str) -> Optional[str]:
        return as_string(self._members.get(key))

    def string(self, key: str, default: str = "") -> str:
        value = self.optional_string(key)
        return default if value is None else value

    def optional_number(self, key: str) -> Optional[float]:
        return as_number(self._members.get(key))

    def number(self, key: str, default: float = 0.0) -> float:
        value = self.optional_number(key)
        return default if value is None else value

    def integer(self, key: str, default: int = 0) -> int:
        value = self.optional_number(key)
        return default if value is None else int(value)

    def boolean(self, key: str, default: bool = False) -> bool:
        value = as_bool(self._members.get(key))
        return default if value is None else value

    def object(self, key: str) -> Optional[ScannedObject]:
        raw = self._members.get(key)
        if raw is None or not raw.startswith("{"):
            return None
        return ScannedObject(raw)

    def array(self, key: str) -> Optional[list[str]]:
        raw = self._members.get(key)
        if raw is None or not raw.startswith("["):
            return None
        return list(iter_elements(raw))

    def objects(self, key: str) -> list[ScannedObject]:
        """Object elements of an array member; other elements are skipped."""
        return [ScannedObject(e) for e in self.array(key) or () if e.startswith("{")]

    def strings(self, key: str) -> list[str]:
        """String elements of an array member; other elements are skipped."""
        values = (as_string(e) for e in self.array(key) or ())
        return [v for v in values if v is not None]
