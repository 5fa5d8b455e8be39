from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from svgpanels.geometry import Bounds
from svgpanels.textfit import FALLBACK_FONT_SIZE, MIN_FONT_SIZE, estimate_metrics, fit_text, measure_text


class TextFitTests(unittest.TestCase):
    def test_empty_text_uses_fallback_size(self) -> None:
        fit = fit_text("", None, Bounds(0, 0, 40, 10))
        self.assertEqual(fit.font_size, FALLBACK_FONT_SIZE)
        self.assertEqual(fit.x, 20)

    def test_degenerate_box_uses_fallback_size(self) -> None:
        self.assertEqual(fit_text("Hi", None, Bounds(0, 0, 0, 10)).font_size, FALLBACK_FONT_SIZE)

    def test_size_grows_with_box_height(self) -> None:
        sizes = [fit_text("Anderson", "Roboto", Bounds(0, 0, 200, h)).font_size for h in (2, 4, 8, 16)]
        self.assertEqual(sizes, sorted(sizes))
        self.assertLess(sizes[0], sizes[-1])

    def test_label_is_centered_and_inside_box(self) -> None:
        box = Bounds(10, 50, 60, 8)
        fit = fit_text("Smith", "Roboto", box)
        self.assertEqual(fit.x, 40)
        self.assertLess(fit.y, 58)
        self.assertGreater(fit.y, 50)
        metrics = measure_text("Smith", "Roboto", fit.font_size)
        self.assertLessEqual(metrics.width, box.width)

    def test_tiny_box_clamps_to_minimum(self) -> None:
        fit = fit_text("A long family name", None, Bounds(0, 0, 0.01, 0.01))
        self.assertEqual(fit.font_size, MIN_FONT_SIZE)

    def test_estimate_metrics(self) -> None:
        metrics = estimate_metrics("abc", 10)
        self.assertAlmostEqual(metrics.width, 18)
        self.assertAlmostEqual(metrics.height, 12)
        self.assertAlmostEqual(metrics.ascent, 8)
        self.assertAlmostEqual(metrics.descent, 2)


if __name__ == "__main__":
    unittest.main()
