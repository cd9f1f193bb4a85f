from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(TESTS_DIR.parent / "src"))

from chartpress.colors import (
    convert_color_functions,
    hsl_to_hex,
    normalize_colors,
    normalize_css,
    normalize_paint,
    rgb_to_hex,
)


class ColorFunctionTests(unittest.TestCase):
    def test_hsl_to_hex(self) -> None:
        self.assertEqual(hsl_to_hex(120, 100, 50), "#00ff00")
        self.assertEqual(hsl_to_hex(0, 100, 50), "#ff0000")
        self.assertEqual(hsl_to_hex(240, 100, 50), "#0000ff")
        self.assertEqual(hsl_to_hex(0, 0, 100), "#ffffff")
        self.assertEqual(hsl_to_hex(0, 0, 0), "#000000")

    def test_hsl_rounds_half_up(self) -> None:
        # 50% grey is 127.5 before rounding.
        self.assertEqual(hsl_to_hex(0, 0, 50), "#808080")

    def test_out_of_range_raises(self) -> None:
        with self.assertRaises(ValueError):
            hsl_to_hex(361, 50, 50)
        with self.assertRaises(ValueError):
            rgb_to_hex(256, 0, 0)

    def test_convert_functions(self) -> None:
        self.assertEqual(convert_color_functions("hsl(120,100%,50%)"), "#00ff00")
        self.assertEqual(convert_color_functions("rgb(255,0,0)"), "#ff0000")
        self.assertEqual(convert_color_functions("rgba(0,0,255,0.5)"), "#0000ff")
        self.assertEqual(convert_color_functions("rgba(0, 0, 255, .25)"), "#0000ff")
        self.assertEqual(convert_color_functions("hsl(120.5, 40.5%, 60%)"), hsl_to_hex(120.5, 40.5, 60))

    def test_out_of_range_left_literal(self) -> None:
        for text in ("rgb(300,0,0)", "hsl(400, 50%, 50%)", "hsl(10, 150%, 50%)", "rgba(0,0,999,1)"):
            self.assertEqual(convert_color_functions(text), text)

    def test_hex_colors_untouched(self) -> None:
        self.assertEqual(convert_color_functions("fill:#abcdef;stroke:red"), "fill:#abcdef;stroke:red")


class KeywordTests(unittest.TestCase):
    def test_current_color(self) -> None:
        self.assertEqual(normalize_css("stroke: currentColor"), "stroke: #000000")
        self.assertEqual(normalize_paint("fill", "currentColor"), "#000000")

    def test_revert(self) -> None:
        self.assertEqual(normalize_css("stroke: revert"), "stroke: #000000")
        self.assertEqual(normalize_css("fill:revert"), "fill:#000000")
        self.assertEqual(normalize_css("stroke-width: revert;"), "stroke-width: 1px;")
        self.assertEqual(normalize_paint("stroke", "revert"), "#000000")

    def test_revert_on_other_property_is_kept(self) -> None:
        self.assertEqual(normalize_css("color: revert"), "color: revert")

    def test_initial_uses_preceding_property(self) -> None:
        self.assertEqual(normalize_css("fill: initial"), "fill: #000000")
        self.assertEqual(normalize_css("stroke-width: initial"), "stroke-width: 1px")
        self.assertEqual(normalize_css("fill:red;stroke-width:initial"), "fill:red;stroke-width:1px")
        self.assertEqual(normalize_paint("fill", "initial"), "#000000")

    def test_initial_without_property_is_kept(self) -> None:
        self.assertEqual(normalize_css("color: initial"), "color: initial")

    def test_initial_inside_identifier_is_kept(self) -> None:
        self.assertEqual(normalize_css(".initial-state{fill:#fff}"), ".initial-state{fill:#fff}")

    def test_initial_resolution_is_logged(self) -> None:
        with self.assertLogs("chartpress.colors", level="DEBUG") as logs:
            normalize_css("stroke: initial")
        self.assertTrue(any("stroke" in line for line in logs.output))


class NormalizeSvgTests(unittest.TestCase):
    def test_rewrites_style_blocks_and_attributes(self) -> None:
        svg = (
            "<svg><style>.a{fill:hsl(120, 100%, 50%);stroke:currentColor}</style>"
            '<rect fill="rgb(255, 0, 0)" stroke="revert" style="stroke-width: revert"/></svg>'
        )
        self.assertEqual(
            normalize_colors(svg),
            "<svg><style>.a{fill:#00ff00;stroke:#000000}</style>"
            '<rect fill="#ff0000" stroke="#000000" style="stroke-width: 1px"/></svg>',
        )

    def test_single_quoted_attributes(self) -> None:
        self.assertEqual(
            normalize_colors("<rect fill='rgba(1, 2, 3, 0.1)'/>"),
            "<rect fill='#010203'/>",
        )

    def test_leaves_text_and_other_attributes_alone(self) -> None:
        svg = '<svg><text data-color="rgb(1, 2, 3)">rgb(1, 2, 3)</text><rect fill="rgb(300, 0, 0)"/></svg>'
        self.assertEqual(normalize_colors(svg), svg)


if __name__ == "__main__":
    unittest.main()
