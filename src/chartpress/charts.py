"""Mermaid chart extraction from, and media rewriting of, ADF documents."""
from __future__ import annotations

import hashlib
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

CHART_LANGUAGE = "mermaid"
CHART_PREFIX = "RenderedMermaidChart"
SVG_EXTENSION = ".svg"
PNG_EXTENSION = ".png"
MISSING_CHART_SOURCE = "flowchart LR\nid1[Missing Chart]"

CODE_BLOCK_TYPE = "codeBlock"
MEDIA_WRAPPER_TYPE = "mediaSingle"
MEDIA_TYPE = "media"
MEDIA_LAYOUT = "center"


@dataclass(frozen=True)
class ChartItem:
    name: str
    source: str


@dataclass(frozen=True)
class RenderedAsset:
    name: str
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class UploadedAsset:
    collection_id: str
    asset_id: str
    width: Optional[int] = None
    height: Optional[int] = None


class ChartSet:
    """Charts to render in one publish run, deduplicated by value.

    Mutable, and therefore unhashable.
    """

    def __init__(self, items: Iterable[ChartItem] = ()) -> None:
        self._items: Dict[ChartItem, None] = {}
        for item in items:
            self.add(item)

    def add(self, item: ChartItem) -> None:
        self._items.setdefault(item, None)

    def names(self) -> List[str]:
        return [item.name for item in self._items]

    def __iter__(self) -> Iterator[ChartItem]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChartSet):
            return NotImplemented
        return set(self._items) == set(other._items)

    def __repr__(self) -> str:
        return f"ChartSet({list(self._items)!r})"


def chart_name(source: Optional[str]) -> str:
    """Content-addressed upload name for a chart source (placeholder text when empty)."""
    text = source or MISSING_CHART_SOURCE
    digest = hashlib.md5(text.encode("utf-8")).hexdigest()
    return f"{CHART_PREFIX}-{digest}{SVG_EXTENSION}"


def chart_item(source: Optional[str]) -> ChartItem:
    return ChartItem(name=chart_name(source), source=source or MISSING_CHART_SOURCE)


def with_extension(name: str, extension: str) -> str:
    if name.endswith(SVG_EXTENSION):
        return name[: -len(SVG_EXTENSION)] + extension
    return name


def is_chart_node(node: Any) -> bool:
    if not isinstance(node, dict) or node.get("type") != CODE_BLOCK_TYPE:
        return False
    attrs = node.get("attrs") or {}
    return attrs.get("language") == CHART_LANGUAGE


def first_text(node: Mapping[str, Any]) -> Optional[str]:
    for child in node.get("content") or []:
        if isinstance(child, dict) and "text" in child:
            return child.get("text")
    return None


def _walk(node: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(node, list):
        for child in node:
            yield from _walk(child)
        return
    if not isinstance(node, dict):
        return
    yield node
    yield from _walk(node.get("content") or [])


def extract(document: Mapping[str, Any]) -> ChartSet:
    """Collect every non-empty Mermaid code block of ``document`` into a ChartSet."""
    charts = ChartSet()
    for node in _walk(document):
        if not is_chart_node(node):
            continue
        source = first_text(node)
        if not source:
            continue
        charts.add(ChartItem(name=chart_name(source), source=source))
    return charts


def _media_node(asset: UploadedAsset) -> Dict[str, Any]:
    attrs: Dict[str, Any] = {
        "type": "file",
        "collection": asset.collection_id,
        "id": asset.asset_id,
    }
    if asset.width is not None:
        attrs["width"] = asset.width
    if asset.height is not None:
        attrs["height"] = asset.height
    return {"type": MEDIA_TYPE, "attrs": attrs}


def rewrite(
    document: Mapping[str, Any], name_to_asset: Mapping[str, Optional[UploadedAsset]]
) -> Dict[str, Any]:
    """Return a copy of ``document`` with uploaded charts replaced by media nodes.

    Empty chart blocks and blocks without an uploaded asset are left as they are.
    """
    result = deepcopy(document)
    for node in _walk(result):
        if not is_chart_node(node):
            continue
        source = first_text(node)
        if not source:
            continue
        asset = name_to_asset.get(chart_name(source))
        if asset is None:
            continue
        node["type"] = MEDIA_WRAPPER_TYPE
        attrs = node.setdefault("attrs", {})
        attrs["layout"] = MEDIA_LAYOUT
        attrs.pop("language", None)
        node["content"] = [_media_node(asset)]
    return result


__all__ = [
    "CHART_LANGUAGE",
    "ChartItem",
    "ChartSet",
    "RenderedAsset",
    "UploadedAsset",
    "chart_name",
    "extract",
    "rewrite",
]
