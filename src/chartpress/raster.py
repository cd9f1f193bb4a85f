"""Off-screen raster surfaces used to turn rendered SVG into PNG."""
from __future__ import annotations

import io
import math
import re
import xml.etree.ElementTree as ET
from functools import lru_cache
from typing import Callable, Optional, Protocol, Tuple

from PIL import Image

DEFAULT_SIZE = (800.0, 600.0)


class RasterSurface(Protocol):
    width: int
    height: int

    def draw_vector_at(self, svg_text: str, scale: float) -> None:
        ...

    def encode(self, fmt: str = "PNG") -> bytes:
        ...


SurfaceFactory = Callable[[int, int], RasterSurface]


class PillowSurface:
    """Transparent RGBA bitmap that SVG is composited onto via CairoSVG."""

    def __init__(self, width: int, height: int) -> None:
        if width < 1 or height < 1:
            raise ValueError(f"surface size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        self._image = Image.new("RGBA", (width, height), (0, 0, 0, 0))

    def draw_vector_at(self, svg_text: str, scale: float) -> None:
        import cairosvg

        # The surface size already includes scale; the drawing fills it exactly.
        png = cairosvg.svg2png(
            bytestring=svg_text.encode("utf-8"),
            output_width=self.width,
            output_height=self.height,
        )
        with Image.open(io.BytesIO(png)) as drawn:
            layer = drawn.convert("RGBA")
        if layer.size != self._image.size:
            layer = layer.crop((0, 0, self.width, self.height))
        self._image.alpha_composite(layer)

    def encode(self, fmt: str = "PNG") -> bytes:
        buffer = io.BytesIO()
        self._image.save(buffer, format=fmt)
        return buffer.getvalue()


def create_surface(width: int, height: int) -> RasterSurface:
    return PillowSurface(width, height)


@lru_cache(maxsize=None)
def transparent_png() -> bytes:
    """A 1x1 fully transparent PNG."""
    return PillowSurface(1, 1).encode("PNG")


def parse_length(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    match = re.match(r"^\s*(\d+(?:\.\d+)?)\s*(?:px)?\s*$", value)
    if match:
        return float(match.group(1))
    return None


def svg_size(svg_text: str) -> Tuple[float, float]:
    """Natural size of an SVG: its viewBox, else width/height, else 800x600."""
    root = ET.fromstring(svg_text.encode("utf-8"))
    view_box = root.get("viewBox")
    if view_box:
        parts = re.split(r"[\s,]+", view_box.strip())
        if len(parts) == 4:
            try:
                width, height = float(parts[2]), float(parts[3])
            except ValueError:
                width = height = 0.0
            if width > 0 and height > 0:
                return width, height
    width = parse_length(root.get("width"))
    height = parse_length(root.get("height"))
    if width and height:
        return width, height
    return DEFAULT_SIZE


def scaled_size(size: Tuple[float, float], scale: float) -> Tuple[int, int]:
    width, height = size
    return max(int(math.ceil(width * scale)), 1), max(int(math.ceil(height * scale)), 1)


__all__ = ["PillowSurface", "RasterSurface", "SurfaceFactory", "create_surface", "svg_size", "transparent_png"]
