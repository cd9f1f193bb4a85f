from __future__ import annotations

import copy
import hashlib
import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(TESTS_DIR.parent / "src"))
sys.path.insert(0, str(TESTS_DIR))

from chartpress.charts import (
    MISSING_CHART_SOURCE,
    ChartItem,
    ChartSet,
    UploadedAsset,
    chart_name,
    extract,
    rewrite,
    with_extension,
)
from fakes import chart_block, document, paragraph

FLOW = "graph TD\n  A-->B"


class ChartNameTests(unittest.TestCase):
    def test_name_is_content_addressed(self) -> None:
        digest = hashlib.md5(FLOW.encode("utf-8")).hexdigest()
        self.assertEqual(chart_name(FLOW), f"RenderedMermaidChart-{digest}.svg")
        self.assertEqual(chart_name(FLOW), chart_name(str(FLOW)))
        self.assertNotEqual(chart_name(FLOW), chart_name(FLOW + " "))

    def test_empty_source_uses_placeholder_text(self) -> None:
        self.assertEqual(chart_name(None), chart_name(MISSING_CHART_SOURCE))
        self.assertEqual(chart_name(""), chart_name(MISSING_CHART_SOURCE))

    def test_with_extension(self) -> None:
        self.assertEqual(with_extension("a.svg", ".png"), "a.png")
        self.assertEqual(with_extension("a.svg", ""), "a")
        self.assertEqual(with_extension("a.txt", ".png"), "a.txt")


class ChartSetTests(unittest.TestCase):
    def test_dedups_by_value(self) -> None:
        charts = ChartSet([ChartItem("a.svg", "x"), ChartItem("a.svg", "x"), ChartItem("b.svg", "y")])
        self.assertEqual(len(charts), 2)
        self.assertEqual(charts.names(), ["a.svg", "b.svg"])
        self.assertIn(ChartItem("b.svg", "y"), charts)

    def test_equality_ignores_order(self) -> None:
        first = ChartSet([ChartItem("a.svg", "x"), ChartItem("b.svg", "y")])
        second = ChartSet([ChartItem("b.svg", "y"), ChartItem("a.svg", "x")])
        self.assertEqual(first, second)

    def test_is_unhashable(self) -> None:
        with self.assertRaises(TypeError):
            hash(ChartSet())


class ExtractTests(unittest.TestCase):
    def test_extract_is_deterministic(self) -> None:
        first = extract(document(chart_block(FLOW)))
        second = extract(document(paragraph("intro"), chart_block(FLOW)))
        self.assertEqual(first.names(), second.names())
        self.assertEqual(list(first), [ChartItem(chart_name(FLOW), FLOW)])

    def test_identical_blocks_collapse(self) -> None:
        charts = extract(document(chart_block(FLOW), paragraph("between"), chart_block(FLOW)))
        self.assertEqual(len(charts), 1)

    def test_finds_nested_blocks(self) -> None:
        nested = {
            "type": "panel",
            "attrs": {"panelType": "info"},
            "content": [{"type": "layoutColumn", "content": [chart_block("pie\n  \"a\": 1")]}],
        }
        charts = extract(document(nested, chart_block(FLOW)))
        self.assertEqual(len(charts), 2)

    def test_skips_empty_and_foreign_blocks(self) -> None:
        doc = document(
            chart_block(None),
            chart_block(""),
            chart_block("print('hi')", language="python"),
            {"type": "codeBlock", "content": [{"type": "text", "text": FLOW}]},
        )
        self.assertEqual(len(extract(doc)), 0)

    def test_empty_document(self) -> None:
        self.assertEqual(len(extract({"type": "doc", "content": []})), 0)
        self.assertEqual(len(extract({})), 0)


class RewriteTests(unittest.TestCase):
    def test_empty_mapping_leaves_document_unchanged(self) -> None:
        doc = document(paragraph("intro"), chart_block(FLOW), chart_block(None))
        self.assertEqual(rewrite(doc, {}), doc)

    def test_none_asset_leaves_block_unchanged(self) -> None:
        doc = document(chart_block(FLOW))
        self.assertEqual(rewrite(doc, {chart_name(FLOW): None}), doc)

    def test_uploaded_asset_becomes_media(self) -> None:
        doc = document(paragraph("intro"), chart_block(FLOW))
        original = copy.deepcopy(doc)
        asset = UploadedAsset(collection_id="c1", asset_id="a1", width=100, height=50)

        result = rewrite(doc, {chart_name(FLOW): asset})

        self.assertEqual(doc, original)
        self.assertEqual(result["content"][0], paragraph("intro"))
        self.assertEqual(
            result["content"][1],
            {
                "type": "mediaSingle",
                "attrs": {"layout": "center"},
                "content": [
                    {
                        "type": "media",
                        "attrs": {"type": "file", "collection": "c1", "id": "a1", "width": 100, "height": 50},
                    }
                ],
            },
        )

    def test_empty_block_untouched_when_placeholder_text_is_uploaded(self) -> None:
        doc = document(chart_block(None), chart_block(MISSING_CHART_SOURCE))
        result = rewrite(doc, {chart_name(MISSING_CHART_SOURCE): UploadedAsset("c1", "a1")})
        self.assertEqual(result["content"][0], chart_block(None))
        self.assertEqual(result["content"][1]["type"], "mediaSingle")

    def test_missing_dimensions_are_omitted(self) -> None:
        result = rewrite(document(chart_block(FLOW)), {chart_name(FLOW): UploadedAsset("c1", "a1")})
        media = result["content"][0]["content"]
        self.assertEqual(media, [{"type": "media", "attrs": {"type": "file", "collection": "c1", "id": "a1"}}])

    def test_other_code_blocks_untouched(self) -> None:
        python_block = chart_block(FLOW, language="python")
        doc = document(python_block, chart_block(FLOW))
        result = rewrite(doc, {chart_name(FLOW): UploadedAsset("c1", "a1")})
        self.assertEqual(result["content"][0], python_block)
        self.assertEqual(result["content"][1]["type"], "mediaSingle")


if __name__ == "__main__":
    unittest.main()
