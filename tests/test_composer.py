from __future__ import annotations

import dataclasses
import sys
import unittest
import xml.etree.ElementTree as ET
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from svgpanels.composer import (
    AssetCache,
    PanelItem,
    PanelSettings,
    ProcessingOptions,
    build_panels,
    fit_transform,
    plan_panels,
    process_asset,
    sanitize_id,
)
from svgpanels.errors import LayoutInfeasibleError, ParseError
from svgpanels.geometry import Bounds
from svgpanels.layers import layer_preset
from svgpanels.svgdoc import SVG_NS, local_name

ASSET = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">'
    '<rect x="10" y="10" width="20" height="20" fill="#000"/></svg>'
)

ORNAMENT = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">'
    "<style>.c{stroke:#0000ff;fill:none}</style>"
    '<circle class="c" cx="50" cy="55" r="40"/>'
    '<rect x="30" y="40" width="40" height="20" fill="#000"/></svg>'
)

SETTINGS = PanelSettings(panel_width=300, panel_height=300, cell_size=60)


def _item(name: str, text: str = ASSET, label: str = "") -> PanelItem:
    return PanelItem(id=name, label=label, load=lambda: text)


def _children(panel: str, tag: str):
    root = ET.fromstring(panel)
    return root.findall(f"{{{SVG_NS}}}{tag}")


class BuildPanelsTests(unittest.TestCase):
    def test_items_overflow_to_second_panel(self) -> None:
        items = [_item(f"item{i}.svg") for i in range(27)]
        built = build_panels(items, SETTINGS)
        self.assertEqual(built.panel_count, 2)
        self.assertEqual((built.cols, built.rows, built.capacity_per_panel), (5, 5, 25))
        self.assertEqual(len(_children(built.panels[0], "g")), 25)
        self.assertEqual(len(_children(built.panels[1], "g")), 2)

    def test_no_items_no_panels(self) -> None:
        self.assertEqual(build_panels([], SETTINGS).panels, [])

    def test_panel_root_has_physical_size(self) -> None:
        panel = build_panels([_item("a.svg")], SETTINGS).panels[0]
        root = ET.fromstring(panel)
        self.assertEqual(root.get("width"), "300mm")
        self.assertEqual(root.get("viewBox"), "0 0 300 300")

    def test_group_ids_are_unique(self) -> None:
        built = build_panels([_item("a/star.svg"), _item("b/star.svg")], SETTINGS)
        ids = [g.get("id") for g in _children(built.panels[0], "g")]
        self.assertEqual(ids, ["star", "star-2"])

    def test_labels_and_borders(self) -> None:
        settings = dataclasses.replace(SETTINGS, label_height=10, show_cell_borders=True)
        built = build_panels([_item("a.svg", label="Smith"), _item("b.svg")], settings)
        texts = _children(built.panels[0], "text")
        self.assertEqual([t.text for t in texts], ["Smith"])
        self.assertEqual(texts[0].get("text-anchor"), "middle")
        self.assertEqual(texts[0].get("x"), "30")
        borders = _children(built.panels[0], "rect")
        self.assertEqual(len(borders), 2)
        self.assertEqual(borders[0].get("stroke"), "#2563eb")

    def test_infeasible_settings_raise_even_without_items(self) -> None:
        settings = dataclasses.replace(SETTINGS, cell_size=400)
        with self.assertRaises(LayoutInfeasibleError):
            build_panels([], settings)

    def test_invalid_asset_aborts_generation(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            build_panels([_item("ok.svg"), _item("bad.svg", "<svg><g></svg>")], SETTINGS)
        self.assertEqual(ctx.exception.asset_id, "bad.svg")

    def test_asset_text_runs_are_not_reindented(self) -> None:
        lettered = (
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 100 100">'
            '<text x="10" y="50"><tspan>W</tspan><tspan>ave</tspan></text></svg>'
        )
        panel = build_panels([_item("wave.svg", lettered)], SETTINGS).panels[0]
        text = ET.fromstring(panel).find(f".//{{{SVG_NS}}}text")
        self.assertEqual("".join(text.itertext()), "Wave")

    def test_art_is_scaled_into_cell(self) -> None:
        panel = build_panels([_item("a.svg")], SETTINGS).panels[0]
        outer = _children(panel, "g")[0]
        inner = outer.find(f"{{{SVG_NS}}}g")
        self.assertEqual(inner.get("transform"), "translate(0, 0) scale(3) translate(-10, -10)")


class CacheTests(unittest.TestCase):
    def test_assets_are_parsed_and_processed_once(self) -> None:
        cache = AssetCache()
        items = [_item("a.svg"), _item("a.svg"), _item("b.svg")]
        build_panels(items, SETTINGS, cache=cache)
        build_panels(items, SETTINGS, cache=cache)
        self.assertEqual(cache.parse_count, 2)
        self.assertEqual(cache.process_count, 2)

    def test_changed_options_reprocess_without_reparsing(self) -> None:
        cache = AssetCache()
        items = [_item("a.svg")]
        build_panels(items, SETTINGS, cache=cache)
        build_panels(items, dataclasses.replace(SETTINGS, remove_ornament_hole=True), cache=cache)
        self.assertEqual(cache.parse_count, 1)
        self.assertEqual(cache.process_count, 2)

    def test_bounds_fall_back_to_viewbox(self) -> None:
        cache = AssetCache()
        item = _item("empty.svg", '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 80 40"/>')
        elements, bounds = cache.processed(item, ProcessingOptions())
        self.assertEqual(elements, ())
        self.assertEqual(bounds, Bounds(0, 0, 80, 40))

    def test_read_text_callback(self) -> None:
        cache = AssetCache(read_text=lambda asset_id: ASSET)
        _elements, bounds = cache.processed(PanelItem(id="disk.svg"), ProcessingOptions())
        self.assertEqual(bounds, Bounds(10, 10, 20, 20))
        self.assertIn("disk.svg", cache)


class ProcessingTests(unittest.TestCase):
    def test_round_backer_replaces_cut_line_after_layer_rules(self) -> None:
        options = ProcessingOptions(layer_rules=layer_preset("standard"), add_round_backer=True)
        elements = process_asset(ORNAMENT, options)
        self.assertEqual([local_name(e.tag) for e in elements], ["rect", "circle"])
        backer = elements[-1]
        self.assertEqual((backer.get("cx"), backer.get("cy"), backer.get("r")), ("50", "55", "40"))
        self.assertEqual(backer.get("stroke"), "#000000")
        for elem in elements:
            self.assertNotEqual(elem.get("stroke"), "#0000ff")

    def test_round_backer_with_inverted_preset(self) -> None:
        options = ProcessingOptions(layer_rules=layer_preset("inverted"), add_round_backer=True)
        elements = process_asset(ORNAMENT, options)
        self.assertEqual([local_name(e.tag) for e in elements], ["rect", "circle"])
        self.assertEqual(elements[0].get("fill"), "#000000")
        backer = elements[-1]
        self.assertEqual((backer.get("cx"), backer.get("cy"), backer.get("r")), ("50", "55", "40"))
        self.assertEqual(backer.get("fill"), "none")

    def test_passthrough_keeps_content(self) -> None:
        elements = process_asset(ORNAMENT, ProcessingOptions())
        self.assertEqual([local_name(e.tag) for e in elements], ["circle", "rect"])
        self.assertEqual(elements[0].get("stroke"), "#0000ff")


class SettingsTests(unittest.TestCase):
    def test_from_dict_with_aliases_and_preset(self) -> None:
        settings = PanelSettings.from_dict(
            {"panelWidth": 300, "panelHeight": 200, "cellSize": 50, "layerPreset": "standard", "showCellBorders": True}
        )
        self.assertEqual(settings.panel_height, 200)
        self.assertTrue(settings.show_cell_borders)
        self.assertEqual(settings.layer_rules, layer_preset("standard"))

    def test_from_dict_with_explicit_rules(self) -> None:
        settings = PanelSettings.from_dict(
            {
                "panel_width": 300,
                "panel_height": 300,
                "cell_size": 60,
                "layerRules": [{"color": "#f00", "visibility": "hidden", "renderMode": "fill"}],
            }
        )
        self.assertEqual(len(settings.layer_rules), 1)
        self.assertEqual(settings.layer_rules[0].color, "#ff0000")

    def test_unknown_setting_rejected(self) -> None:
        with self.assertRaises(ValueError):
            PanelSettings.from_dict({"panelWidth": 1, "panelHeight": 1, "cellSize": 1, "bedSize": 3})

    def test_equal_settings_share_processing_options(self) -> None:
        other = PanelSettings.from_dict({"panelWidth": 300, "panelHeight": 300, "cellSize": 60})
        self.assertEqual(other.processing_options(), SETTINGS.processing_options())


class HelperTests(unittest.TestCase):
    def test_fit_transform_centers_and_scales_uniformly(self) -> None:
        transform = fit_transform(Bounds(0, 0, 50, 100), Bounds(0, 0, 60, 60))
        self.assertEqual(transform, "translate(15, 0) scale(0.6) translate(0, 0)")

    def test_plan_panels_assigns_cells_in_order(self) -> None:
        items = [_item(f"{i}.svg") for i in range(7)]
        grid, plans = plan_panels(items, dataclasses.replace(SETTINGS, panel_width=120, panel_height=120))
        self.assertEqual(grid.capacity_per_panel, 4)
        self.assertEqual([len(p.cells) for p in plans], [4, 3])
        self.assertEqual(plans[1].cells[0].item.id, "4.svg")

    def test_sanitize_id(self) -> None:
        self.assertEqual(sanitize_id("My Star (1).SVG"), "My_Star_1")


if __name__ == "__main__":
    unittest.main()
