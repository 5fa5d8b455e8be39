from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from svgpanels.geometry import (
    Bounds,
    evaluation_context,
    measure_content_bounds,
    parse_transform,
    path_data_bbox,
    path_subpaths,
    subpath_d,
    subpaths_bbox,
)
from svgpanels.svgdoc import ViewBox, parse_root


class BoundsAssertions(unittest.TestCase):
    def assertBounds(self, actual, expected, places: int = 6) -> None:
        self.assertIsNotNone(actual)
        for name in ("x", "y", "width", "height"):
            self.assertAlmostEqual(getattr(actual, name), getattr(expected, name), places=places, msg=name)


class PathBBoxTests(BoundsAssertions):
    def test_polyline_path(self) -> None:
        self.assertBounds(path_data_bbox("M0 0 L10 0 L10 5 Z"), Bounds(0, 0, 10, 5))

    def test_relative_moveto_repeats_as_lineto(self) -> None:
        self.assertBounds(path_data_bbox("m10 10 20 0 0 20z"), Bounds(10, 10, 20, 20))

    def test_cubic_uses_curve_extrema_not_control_points(self) -> None:
        bbox = path_data_bbox("M0 0 C0 10 10 10 10 0")
        self.assertBounds(bbox, Bounds(0, 0, 10, 7.5))

    def test_arc_extends_past_endpoints(self) -> None:
        bbox = path_data_bbox("M0 10 A10 10 0 0 1 20 10")
        self.assertBounds(bbox, Bounds(0, 0, 20, 10))

    def test_h_and_v_commands(self) -> None:
        self.assertBounds(path_data_bbox("M1 1 H6 V4 h-2 v3"), Bounds(1, 1, 5, 6))

    def test_each_moveto_starts_a_subpath(self) -> None:
        subpaths = path_subpaths("M0 0 L4 0 L4 4 Z m10 10 l2 0 l0 2 z")
        self.assertEqual(len(subpaths), 2)
        self.assertTrue(subpaths[0].isclosed())
        # The relative moveto continues from the closed first subpath.
        self.assertBounds(subpaths_bbox([subpaths[1]]), Bounds(10, 10, 2, 2))

    def test_malformed_data_raises(self) -> None:
        with self.assertRaises(ValueError):
            path_subpaths("10 10 L 5 5")

    def test_subpath_data_is_absolute(self) -> None:
        subpaths = path_subpaths("M0 0 L1 0 Z m1 1 l2 0 l0 2 z")
        d = subpath_d(subpaths[1])
        self.assertNotIn("m", d)
        self.assertNotIn("l", d)
        self.assertBounds(path_data_bbox(d), Bounds(1, 1, 2, 2))

    def test_rotated_path_is_bounded_after_transform(self) -> None:
        # A 10x10 square turned 45 degrees spans its diagonal on both axes.
        bbox = path_data_bbox("M0 0 L10 0 L10 10 L0 10 Z", parse_transform("rotate(45)"))
        diagonal = 10 * 2 ** 0.5
        self.assertBounds(bbox, Bounds(-diagonal / 2, 0, diagonal, diagonal))


class TransformTests(BoundsAssertions):
    def test_transform_list_composes_left_to_right(self) -> None:
        m = parse_transform("translate(5,5) scale(2)")
        self.assertEqual(m, (2.0, 0.0, 0.0, 2.0, 5.0, 5.0))

    def test_group_transform_applies_to_children(self) -> None:
        root = parse_root(
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">'
            '<g transform="translate(5,5) scale(2)"><rect id="r" width="10" height="10"/></g></svg>'
        )
        rect = next(e for e in root.iter() if e.get("id") == "r")
        with evaluation_context(root) as ctx:
            self.assertBounds(ctx.element_bbox(rect), Bounds(5, 5, 20, 20))

    def test_rotated_circle_stays_round(self) -> None:
        root = parse_root(
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">'
            '<circle id="c" cx="50" cy="50" r="10" transform="rotate(30 50 50)"/></svg>'
        )
        circle = next(e for e in root.iter() if e.get("id") == "c")
        with evaluation_context(root) as ctx:
            self.assertBounds(ctx.element_bbox(circle), Bounds(40, 40, 20, 20), places=2)

    def test_context_cannot_be_used_after_release(self) -> None:
        root = parse_root('<svg xmlns="http://www.w3.org/2000/svg"/>')
        with evaluation_context(root) as ctx:
            pass
        with self.assertRaises(RuntimeError):
            ctx.element_bbox(root)


class ContentBoundsTests(BoundsAssertions):
    def test_union_skips_defs_and_hidden_nodes(self) -> None:
        root = parse_root(
            '<svg xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink" viewBox="0 0 100 100">'
            '<defs><rect id="tile" width="4" height="4"/></defs>'
            '<rect x="10" y="10" width="20" height="10"/>'
            '<rect x="0" y="0" width="90" height="90" display="none"/>'
            '<use xlink:href="#tile" x="40" y="40"/>'
            "</svg>"
        )
        bounds = measure_content_bounds(ViewBox(0, 0, 100, 100), list(root))
        self.assertBounds(bounds, Bounds(10, 10, 34, 34))

    def test_empty_content_measures_as_none(self) -> None:
        self.assertIsNone(measure_content_bounds(ViewBox(0, 0, 100, 100), []))

    def test_measurement_does_not_mutate_input(self) -> None:
        root = parse_root(
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100"><rect width="5" height="5"/></svg>'
        )
        children = list(root)
        measure_content_bounds(ViewBox(0, 0, 100, 100), children)
        self.assertEqual(list(root), children)


if __name__ == "__main__":
    unittest.main()
