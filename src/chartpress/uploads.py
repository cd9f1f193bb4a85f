"""Local stand-in for the Confluence attachment upload."""
from __future__ import annotations

import io
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .charts import SVG_EXTENSION, UploadedAsset
from .raster import parse_length

logger = logging.getLogger(__name__)


def image_size(name: str, data: bytes) -> Tuple[Optional[int], Optional[int]]:
    """Pixel size of an uploaded image, or ``(None, None)`` when unknown."""
    if name.endswith(SVG_EXTENSION):
        try:
            root = ET.fromstring(data)
        except ET.ParseError:
            return None, None
        width = parse_length(root.get("width"))
        height = parse_length(root.get("height"))
        if width is None or height is None:
            return None, None
        return int(round(width)), int(round(height))
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (UnidentifiedImageError, OSError):
        return None, None


class DirectoryUploader:
    """Writes every asset into one directory; the directory name is the collection."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def upload(self, name: str, data: bytes) -> Optional[UploadedAsset]:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / name
        target.write_bytes(data)
        width, height = image_size(name, data)
        logger.debug("wrote %s (%d bytes)", target, len(data))
        return UploadedAsset(
            collection_id=self.directory.name,
            asset_id=target.stem,
            width=width,
            height=height,
        )


__all__ = ["DirectoryUploader", "image_size"]
