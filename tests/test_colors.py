from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from svgpanels.colors import colors_match, hex_channels, is_none, normalize_color


class NormalizeColorTests(unittest.TestCase):
    def test_short_hex_expands(self) -> None:
        self.assertEqual(normalize_color("#ABC"), "#aabbcc")

    def test_named_colors(self) -> None:
        self.assertEqual(normalize_color(" RED "), "#ff0000")
        self.assertEqual(normalize_color("transparent"), "none")

    def test_rgb_function_clamps_channels(self) -> None:
        self.assertEqual(normalize_color("rgb(300, 0, 10)"), "#ff000a")

    def test_unknown_tokens_are_lowercased(self) -> None:
        self.assertEqual(normalize_color("URL(#Grad)"), "url(#grad)")

    def test_is_none(self) -> None:
        self.assertTrue(is_none(None))
        self.assertTrue(is_none("None"))
        self.assertFalse(is_none("#000"))


class ColorMatchTests(unittest.TestCase):
    def test_equal_after_normalization(self) -> None:
        self.assertTrue(colors_match("blue", "#00F"))

    def test_tolerance_is_per_channel_and_inclusive(self) -> None:
        self.assertTrue(colors_match("#0000ff", "#0a0af5"))
        self.assertFalse(colors_match("#0000ff", "#0000f0"))

    def test_non_hex_tokens_only_match_exactly(self) -> None:
        self.assertFalse(colors_match("url(#a)", "#000000"))
        self.assertTrue(colors_match("url(#a)", "URL(#A)"))

    def test_hex_channels(self) -> None:
        self.assertEqual(hex_channels("#00c100"), (0, 193, 0))
        self.assertIsNone(hex_channels("none"))


if __name__ == "__main__":
    unittest.main()
