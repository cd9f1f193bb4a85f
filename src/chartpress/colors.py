"""Rewrite CSS color functions and keywords into literal hex colors.

Confluence renders uploaded SVG with a renderer that only understands literal
``#rrggbb`` colors. Mermaid output freely uses ``hsl()``, ``rgb()``,
``rgba()`` and CSS-wide keywords, so those are rewritten inside ``<style>``
blocks, ``style`` attributes and ``fill``/``stroke`` attributes. Anything that
cannot be converted safely is left exactly as it was.
"""
from __future__ import annotations

import logging
import math
import re
from typing import Dict, Optional

logger = logging.getLogger(__name__)

FALLBACK_COLOR = "#000000"
FALLBACK_STROKE_WIDTH = "1px"
INITIAL_LOOKBEHIND = 24

KEYWORD_FALLBACKS: Dict[str, str] = {
    "fill": FALLBACK_COLOR,
    "stroke": FALLBACK_COLOR,
    "stroke-width": FALLBACK_STROKE_WIDTH,
}

_NUMBER = r"(\d+(?:\.\d+)?)"

_HSL_RE = re.compile(
    rf"hsl\(\s*{_NUMBER}\s*,\s*{_NUMBER}%\s*,\s*{_NUMBER}%\s*\)",
    re.IGNORECASE,
)
_RGB_RE = re.compile(r"rgb\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)", re.IGNORECASE)
_RGBA_RE = re.compile(
    r"rgba\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*,\s*(?:\d+(?:\.\d*)?|\.\d+)%?\s*\)",
    re.IGNORECASE,
)
_CURRENT_COLOR_RE = re.compile(r"\bcurrentColor\b", re.IGNORECASE)
_REVERT_DECL_RE = re.compile(
    r"(?<![\w-])(?P<prop>stroke-width|stroke|fill)(?P<sep>\s*:\s*)revert(?![\w-])",
    re.IGNORECASE,
)
_INITIAL_RE = re.compile(r"(?<![\w-])initial(?![\w-])", re.IGNORECASE)

_STYLE_BLOCK_RE = re.compile(r"(<style\b[^>]*>)(.*?)(</style\s*>)", re.IGNORECASE | re.DOTALL)
_ATTR_RE = re.compile(
    r"(?P<lead>\s)(?P<attr>style|fill|stroke)(?P<eq>\s*=\s*)(?P<quote>[\"'])(?P<value>.*?)(?P=quote)",
    re.DOTALL,
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def hsl_to_hex(h: float, s: float, l: float) -> str:
    """Convert hue (degrees) and saturation/lightness (percent) to ``#rrggbb``."""
    if not (0 <= h <= 360 and 0 <= s <= 100 and 0 <= l <= 100):
        raise ValueError(f"hsl({h}, {s}%, {l}%) is out of range")
    l = l / 100
    a = s * min(l, 1 - l) / 100

    def channel(n: int) -> str:
        k = (n + h / 30) % 12
        color = l - a * max(min(k - 3, 9 - k, 1), -1)
        return f"{_round_half_up(255 * color):02x}"

    return f"#{channel(0)}{channel(8)}{channel(4)}"


def rgb_to_hex(r: int, g: int, b: int) -> str:
    for channel in (r, g, b):
        if not 0 <= channel <= 255:
            raise ValueError(f"rgb({r}, {g}, {b}) is out of range")
    return f"#{r:02x}{g:02x}{b:02x}"


def _sub_hsl(match: re.Match) -> str:
    try:
        return hsl_to_hex(float(match.group(1)), float(match.group(2)), float(match.group(3)))
    except ValueError:
        return match.group(0)


def _sub_rgb(match: re.Match) -> str:
    try:
        return rgb_to_hex(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return match.group(0)


def convert_color_functions(text: str) -> str:
    """Replace in-range ``hsl()``, ``rgb()`` and ``rgba()`` calls with hex colors.

    ``rgba()`` loses its alpha channel; opacity has no hex equivalent here.
    """
    text = _HSL_RE.sub(_sub_hsl, text)
    text = _RGB_RE.sub(_sub_rgb, text)
    return _RGBA_RE.sub(_sub_rgb, text)


def _guess_property(window: str) -> Optional[str]:
    lowered = window.lower()
    best: Optional[str] = None
    best_pos = -1
    # stroke-width first: at equal positions it wins over its "stroke" prefix.
    for prop in ("stroke-width", "stroke", "fill"):
        pos = lowered.rfind(prop)
        if pos > best_pos:
            best, best_pos = prop, pos
    return best


def _resolve_initial(text: str) -> str:
    def _sub(match: re.Match) -> str:
        window = text[max(0, match.start() - INITIAL_LOOKBEHIND) : match.start()]
        prop = _guess_property(window)
        if prop is None:
            logger.debug("left 'initial' unresolved, no property in %r", window)
            return match.group(0)
        logger.debug("resolved 'initial' as %s from %r (heuristic)", prop, window)
        return KEYWORD_FALLBACKS[prop]

    return _INITIAL_RE.sub(_sub, text)


def normalize_css(text: str) -> str:
    """Normalize colors and keywords in free CSS text (style blocks and attributes)."""
    text = convert_color_functions(text)
    text = _CURRENT_COLOR_RE.sub(FALLBACK_COLOR, text)
    text = _REVERT_DECL_RE.sub(
        lambda m: f"{m.group('prop')}{m.group('sep')}{KEYWORD_FALLBACKS[m.group('prop').lower()]}",
        text,
    )
    return _resolve_initial(text)


def normalize_paint(prop: str, value: str) -> str:
    """Normalize the value of a presentation attribute such as ``fill``."""
    keyword = value.strip().lower()
    if keyword in ("revert", "initial") and prop in KEYWORD_FALLBACKS:
        return KEYWORD_FALLBACKS[prop]
    value = convert_color_functions(value)
    return _CURRENT_COLOR_RE.sub(FALLBACK_COLOR, value)


def normalize_colors(svg_text: str) -> str:
    """Rewrite every color the downstream renderer cannot handle in ``svg_text``."""

    def _style_block(match: re.Match) -> str:
        return f"{match.group(1)}{normalize_css(match.group(2))}{match.group(3)}"

    def _attribute(match: re.Match) -> str:
        attr = match.group("attr")
        value = match.group("value")
        if attr == "style":
            value = normalize_css(value)
        else:
            value = normalize_paint(attr, value)
        quote = match.group("quote")
        return f"{match.group('lead')}{attr}{match.group('eq')}{quote}{value}{quote}"

    svg_text = _STYLE_BLOCK_RE.sub(_style_block, svg_text)
    return _ATTR_RE.sub(_attribute, svg_text)


__all__ = [
    "FALLBACK_COLOR",
    "FALLBACK_STROKE_WIDTH",
    "convert_color_functions",
    "hsl_to_hex",
    "normalize_colors",
    "normalize_css",
    "normalize_paint",
    "rgb_to_hex",
]
