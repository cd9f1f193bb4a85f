"""Character reference decoding for renderer SVG output."""
from __future__ import annotations

import re
from typing import Dict

NAMED_ENTITIES: Dict[str, str] = {
    "&lt;": "<",
    "&gt;": ">",
    "&amp;": "&",
    "&quot;": '"',
    "&apos;": "'",
    "&#39;": "'",
    "&#x27;": "'",
    "&#x2F;": "/",
    "&#x60;": "`",
    "&#x3D;": "=",
    "&nbsp;": " ",
    "&copy;": "©",
    "&reg;": "®",
    "&trade;": "™",
    "&euro;": "€",
    "&pound;": "£",
    "&yen;": "¥",
    "&cent;": "¢",
}

# Alternation order is the decode priority: table, then decimal, then hex.
_ENTITY_RE = re.compile(
    "(?P<named>"
    + "|".join(re.escape(entity) for entity in NAMED_ENTITIES)
    + r")|&#(?P<dec>\d+);|&#[xX](?P<hex>[0-9a-fA-F]+);"
)


def _codepoint(value: int, literal: str) -> str:
    # NUL and lone surrogates cannot appear in XML or be encoded as UTF-8.
    if value == 0 or 0xD800 <= value <= 0xDFFF:
        return literal
    try:
        return chr(value)
    except (ValueError, OverflowError):
        return literal


def _replace(match: re.Match) -> str:
    named = match.group("named")
    if named is not None:
        return NAMED_ENTITIES[named]
    dec = match.group("dec")
    if dec is not None:
        return _codepoint(int(dec, 10), match.group(0))
    return _codepoint(int(match.group("hex"), 16), match.group(0))


def decode_entities(text: str) -> str:
    """Decode character references in one pass so nothing is decoded twice."""
    return _ENTITY_RE.sub(_replace, text)


__all__ = ["NAMED_ENTITIES", "decode_entities"]
