from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from svgpanels.styles import Paint, StyleSheet, inline_style, parse_declarations, resolve_paint
from svgpanels.svgdoc import parse_root, q

DOC = """
<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">
  <style>
    /* exported */
    .st0{fill:#00F;stroke-width:2}
    .st1, path.st2 {stroke:red !important}
    g > .ignored{fill:#123456}
  </style>
  <path id="a" class="st0 st1" d="M0 0L1 1"/>
  <path id="b" class="st0" fill="green" style="fill:#ff0000;font-size:4px" d="M0 0L1 1"/>
  <path id="c" class="st2" stroke="inherit" d="M0 0L1 1"/>
</svg>
"""


class StyleSheetTests(unittest.TestCase):
    def setUp(self) -> None:
        self.root = parse_root(DOC)
        self.sheet = StyleSheet.from_root(self.root)
        self.by_id = {e.get("id"): e for e in self.root.iter() if e.get("id")}

    def test_simple_class_rules_are_collected(self) -> None:
        self.assertEqual(sorted(self.sheet.class_names()), ["st0", "st1", "st2"])
        self.assertEqual(self.sheet.rule("st0"), {"fill": "#00F", "stroke-width": "2"})
        self.assertEqual(self.sheet.rule("st1"), {"stroke": "red"})
        self.assertNotIn("ignored", self.sheet)

    def test_classes_merge_in_order(self) -> None:
        paint = resolve_paint(self.by_id["a"], self.sheet)
        self.assertEqual(paint, Paint(fill="#00F", stroke="red", stroke_width="2"))

    def test_inline_style_beats_class_beats_attribute(self) -> None:
        paint = resolve_paint(self.by_id["b"], self.sheet)
        self.assertEqual(paint.fill, "#ff0000")

    def test_inherit_falls_through_to_parent(self) -> None:
        paint = resolve_paint(self.by_id["c"], StyleSheet(), Paint(stroke="#000"))
        self.assertEqual(paint.stroke, "#000")

    def test_stroke_width_is_not_read_as_stroke(self) -> None:
        decls = parse_declarations("stroke-width: 3; stroke:#111")
        self.assertEqual(decls, {"stroke-width": "3", "stroke": "#111"})

    def test_inline_style_keeps_non_paint_declarations(self) -> None:
        elem = self.by_id["b"]
        inline_style(elem, self.sheet, resolve_paint(elem, self.sheet))
        self.assertIsNone(elem.get("class"))
        self.assertEqual(elem.get("style"), "font-size:4px")
        self.assertEqual(elem.get("fill"), "#ff0000")
        self.assertEqual(elem.get("stroke-width"), "2")
        self.assertEqual(elem.tag, q("path"))


if __name__ == "__main__":
    unittest.main()
