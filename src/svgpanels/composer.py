"""Panel composition: place processed assets and labels onto grid panels."""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from copy import deepcopy
from dataclasses import dataclass, field, fields
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import ParseError
from .geometry import Bounds, measure_content_bounds
from .heuristics import (
    DEFAULT_CUT_LINE_COLOR,
    DEFAULT_HOLE_PARAMS,
    HoleDetectionParams,
    add_round_backer,
    cover_ornament_hole,
    detect_cut_line,
    remove_ornament_hole,
)
from .layers import LayerRule, LayerRules, apply_layer_rules, layer_preset
from .layout import GridInput, GridLayout, Placement, compute_grid_layout, panel_count, require_feasible
from .styles import StyleSheet
from .svgdoc import ViewBox, fmt, indent_tree, inner_markup, parse_root, q, resolve_viewbox, serialize_document
from .textfit import DEFAULT_FONT_FAMILY, fit_text

logger = logging.getLogger(__name__)

CELL_BORDER_COLOR = "#2563eb"
CELL_BORDER_WIDTH = 0.2


@dataclass(frozen=True)
class ProcessingOptions:
    """Everything that changes an asset's processed geometry; compared by value."""

    layer_rules: LayerRules = None
    remove_ornament_hole: bool = False
    add_round_backer: bool = False
    round_backer_stroke_width: float = 0.5
    cut_line_color: str = DEFAULT_CUT_LINE_COLOR
    background_color: str = "#ffffff"
    hole_params: HoleDetectionParams = DEFAULT_HOLE_PARAMS


_SETTING_ALIASES = {
    "panelWidth": "panel_width",
    "panelHeight": "panel_height",
    "cellSize": "cell_size",
    "artWidth": "art_width",
    "artHeight": "art_height",
    "labelHeight": "label_height",
    "showCellBorders": "show_cell_borders",
    "removeOrnamentHole": "remove_ornament_hole",
    "addRoundBacker": "add_round_backer",
    "roundBackerStrokeWidth": "round_backer_stroke_width",
    "layerRules": "layer_rules",
    "layerSettings": "layer_rules",
    "fontFamily": "font_family",
    "labelColor": "label_color",
    "backgroundColor": "background_color",
    "cutLineColor": "cut_line_color",
}


def setting_name(key: str) -> str:
    """Field name a settings key maps to (camelCase aliases resolved)."""
    return _SETTING_ALIASES.get(key, key)


@dataclass(frozen=True)
class PanelSettings:
    """One snapshot of every knob a generation call depends on (lengths in mm)."""

    panel_width: float
    panel_height: float
    cell_size: float
    margin: float = 0.0
    gutter: float = 0.0
    label_height: float = 0.0
    padding: float = 0.0
    art_width: Optional[float] = None
    art_height: Optional[float] = None
    show_cell_borders: bool = False
    remove_ornament_hole: bool = False
    add_round_backer: bool = False
    round_backer_stroke_width: float = 0.5
    layer_rules: LayerRules = None
    font_family: str = DEFAULT_FONT_FAMILY
    label_color: str = "#000000"
    background_color: str = "#ffffff"
    cut_line_color: str = DEFAULT_CUT_LINE_COLOR

    def __post_init__(self) -> None:
        if self.layer_rules is not None and not isinstance(self.layer_rules, tuple):
            object.__setattr__(self, "layer_rules", tuple(self.layer_rules))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PanelSettings":
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        preset: Optional[str] = None
        for key, value in data.items():
            if key in ("layerPreset", "layer_preset"):
                preset = value
                continue
            name = setting_name(key)
            if name not in known:
                raise ValueError(f"unknown setting: {key}")
            values[name] = value
        if preset is not None and "layer_rules" not in values:
            values["layer_rules"] = layer_preset(str(preset))
        elif values.get("layer_rules") is not None:
            values["layer_rules"] = tuple(
                rule if isinstance(rule, LayerRule) else LayerRule.from_dict(rule)
                for rule in values["layer_rules"]
            )
        return cls(**values)

    def grid_input(self) -> GridInput:
        return GridInput(self.panel_width, self.panel_height, self.cell_size, self.margin, self.gutter)

    def processing_options(self) -> ProcessingOptions:
        return ProcessingOptions(
            layer_rules=self.layer_rules,
            remove_ornament_hole=self.remove_ornament_hole,
            add_round_backer=self.add_round_backer,
            round_backer_stroke_width=self.round_backer_stroke_width,
            cut_line_color=self.cut_line_color,
            background_color=self.background_color,
        )


@dataclass(frozen=True)
class PanelItem:
    """One selected asset: identity, display label and a way to read its markup."""

    id: str
    label: str = ""
    name: Optional[str] = None
    load: Optional[Callable[[], str]] = field(default=None, compare=False, repr=False)

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return PureWindowsPath(self.id).name if "\\" in self.id else PurePosixPath(self.id).name


@dataclass(frozen=True)
class CellAssignment:
    item: PanelItem
    label: str
    placement: Placement
    art_box: Bounds
    label_box: Bounds


@dataclass(frozen=True)
class PanelPlan:
    index: int
    cells: Tuple[CellAssignment, ...]


@dataclass
class BuiltPanels:
    panels: List[str]
    cols: int
    rows: int
    capacity_per_panel: int

    @property
    def panel_count(self) -> int:
        return len(self.panels)


@dataclass
class CacheEntry:
    asset_id: str
    viewbox: ViewBox
    content: str
    raw_text: str
    original_bounds: Optional[Bounds] = None
    original_measured: bool = False
    processed: Optional[Tuple[ET.Element, ...]] = None
    processed_bounds: Optional[Bounds] = None
    processing_key: Optional[ProcessingOptions] = None


def process_asset(raw_text: str, options: ProcessingOptions, *, asset_id: Optional[str] = None) -> List[ET.Element]:
    """Run the full geometry pipeline on one asset and return its top-level content.

    Order matters: hole detection and cut-line detection both need the
    intact class styles, so they run before layer rules strip them.
    """
    root = parse_root(raw_text, asset_id=asset_id)
    vb = resolve_viewbox(root)
    sheet = StyleSheet.from_root(root)
    geometric = vb.is_positive

    if options.remove_ornament_hole and geometric:
        remove_ornament_hole(root, vb, options.hole_params)
    cut_line = None
    if options.add_round_backer and geometric:
        cut_line = detect_cut_line(root, sheet, options.cut_line_color)

    apply_layer_rules(root, sheet, options.layer_rules)

    if options.add_round_backer and geometric:
        add_round_backer(root, vb, cut_line, options.round_backer_stroke_width, options.cut_line_color)
    if options.remove_ornament_hole and not options.add_round_backer and geometric:
        cover_ornament_hole(root, vb, options.background_color, options.hole_params)
    return list(root)


class AssetCache:
    """Per-run cache of parsed assets and their processed variant.

    Entries are keyed by asset id; the processed variant is recomputed only
    when the processing options differ from the ones used last.
    """

    def __init__(self, read_text: Optional[Callable[[str], str]] = None) -> None:
        self._read_text = read_text
        self._entries: Dict[str, CacheEntry] = {}
        self.parse_count = 0
        self.process_count = 0

    def __contains__(self, asset_id: str) -> bool:
        return asset_id in self._entries

    def entry(self, item: PanelItem) -> CacheEntry:
        cached = self._entries.get(item.id)
        if cached is not None:
            return cached
        raw_text = self._load(item)
        root = parse_root(raw_text, asset_id=item.id)
        entry = CacheEntry(
            asset_id=item.id,
            viewbox=resolve_viewbox(root),
            content=inner_markup(root),
            raw_text=raw_text,
        )
        self.parse_count += 1
        self._entries[item.id] = entry
        return entry

    def processed(self, item: PanelItem, options: ProcessingOptions) -> Tuple[Tuple[ET.Element, ...], Bounds]:
        """Processed content and the bounds to fit it by, memoized per options."""
        entry = self.entry(item)
        if entry.processed is None or entry.processing_key != options:
            elements = tuple(process_asset(entry.raw_text, options, asset_id=item.id))
            entry.processed = elements
            entry.processed_bounds = measure_content_bounds(entry.viewbox, elements)
            entry.processing_key = options
            self.process_count += 1
            logger.debug("processed %s", item.id)
        else:
            logger.debug("reusing processed %s", item.id)

        bounds = entry.processed_bounds
        if bounds is None:
            if not entry.original_measured:
                original = list(parse_root(entry.raw_text, asset_id=item.id))
                entry.original_bounds = measure_content_bounds(entry.viewbox, original)
                entry.original_measured = True
            bounds = entry.original_bounds
        if bounds is None:
            logger.debug("content bounds unavailable for %s; using viewbox", item.id)
            bounds = Bounds.from_viewbox(entry.viewbox)
        return entry.processed, bounds

    def _load(self, item: PanelItem) -> str:
        if item.load is not None:
            return item.load()
        if self._read_text is None:
            raise ValueError(f"no markup source for asset {item.id!r}")
        return self._read_text(item.id)


def cell_boxes(placement: Placement, settings: PanelSettings) -> Tuple[Bounds, Bounds]:
    """(art box, label box) for one cell: art above, label strip along the bottom."""
    size = placement.size
    label_height = settings.label_height
    padding = settings.padding
    art_region = Bounds(placement.x, placement.y, size, max(0.0, size - label_height))
    label_region = Bounds(placement.x, placement.y + size - label_height, size, max(0.0, label_height))

    art_w = settings.art_width if settings.art_width is not None else art_region.width - padding * 2
    art_h = settings.art_height if settings.art_height is not None else art_region.height - padding * 2
    art_w = max(0.0, art_w)
    art_h = max(0.0, art_h)
    art_box = Bounds(
        art_region.x + (art_region.width - art_w) / 2,
        art_region.y + (art_region.height - art_h) / 2,
        art_w,
        art_h,
    )

    pad_v = min(1.0, label_region.height * 0.1)
    label_box = Bounds(
        label_region.x + padding,
        label_region.y + pad_v,
        max(0.0, label_region.width - padding * 2),
        max(0.0, label_region.height - pad_v * 2),
    )
    return art_box, label_box


def plan_panels(items: Sequence[PanelItem], settings: PanelSettings) -> Tuple[GridLayout, List[PanelPlan]]:
    """Assign items to panels and cells without touching their markup."""
    spec = settings.grid_input()
    grid = compute_grid_layout(spec)
    require_feasible(spec, grid)
    capacity = grid.capacity_per_panel

    plans: List[PanelPlan] = []
    for panel_index in range(panel_count(len(items), capacity)):
        start = panel_index * capacity
        chunk = items[start : min(len(items), start + capacity)]
        cells = []
        for item, placement in zip(chunk, grid.placements):
            art_box, label_box = cell_boxes(placement, settings)
            cells.append(CellAssignment(item, item.label, placement, art_box, label_box))
        plans.append(PanelPlan(panel_index, tuple(cells)))
    return grid, plans


def fit_transform(bounds: Bounds, art_box: Bounds) -> str:
    """translate-into-box * uniform scale * translate(-bounds origin)."""
    if bounds.width > 0 and bounds.height > 0:
        scale = min(art_box.width / bounds.width, art_box.height / bounds.height)
    else:
        scale = 1.0
    offset_x = (art_box.width - bounds.width * scale) / 2
    offset_y = (art_box.height - bounds.height * scale) / 2
    return (
        f"translate({fmt(art_box.x + offset_x, 6)}, {fmt(art_box.y + offset_y, 6)}) "
        f"scale({fmt(scale, 6)}) "
        f"translate({fmt(-bounds.x, 6)}, {fmt(-bounds.y, 6)})"
    )


def render_panel(plan: PanelPlan, settings: PanelSettings, cache: AssetCache) -> str:
    options = settings.processing_options()
    svg_root = ET.Element(
        q("svg"),
        {
            "width": f"{fmt(settings.panel_width)}mm",
            "height": f"{fmt(settings.panel_height)}mm",
            "viewBox": f"0 0 {fmt(settings.panel_width)} {fmt(settings.panel_height)}",
        },
    )
    taken_ids: Set[str] = set()
    attachments: List[Tuple[ET.Element, Tuple[ET.Element, ...]]] = []
    for i, cell in enumerate(plan.cells):
        placement = cell.placement
        if settings.show_cell_borders:
            ET.SubElement(
                svg_root,
                q("rect"),
                {
                    "x": fmt(placement.x),
                    "y": fmt(placement.y),
                    "width": fmt(placement.size),
                    "height": fmt(placement.size),
                    "fill": "none",
                    "stroke": CELL_BORDER_COLOR,
                    "stroke-width": fmt(CELL_BORDER_WIDTH),
                },
            )

        elements, bounds = cache.processed(cell.item, options)
        group_id = _reserve_unique_id(taken_ids, sanitize_id(cell.item.display_name) or f"ornament-{i}")
        outer = ET.SubElement(svg_root, q("g"), {"id": group_id})
        inner = ET.SubElement(outer, q("g"), {"transform": fit_transform(bounds, cell.art_box)})
        attachments.append((inner, elements))

        box = cell.label_box
        if box.width > 0 and box.height > 0 and cell.label:
            fit = fit_text(cell.label, settings.font_family, box)
            text = ET.SubElement(
                svg_root,
                q("text"),
                {
                    "x": fmt(fit.x),
                    "y": fmt(fit.y),
                    "font-family": settings.font_family,
                    "font-size": fmt(fit.font_size),
                    "fill": settings.label_color,
                    "text-anchor": "middle",
                },
            )
            text.text = cell.label

    indent_tree(svg_root)
    for inner, elements in attachments:
        for elem in elements:
            inner.append(deepcopy(elem))
    return serialize_document(svg_root)


def build_panels(
    items: Sequence[PanelItem],
    settings: PanelSettings,
    *,
    read_text: Optional[Callable[[str], str]] = None,
    cache: Optional[AssetCache] = None,
) -> BuiltPanels:
    """Produce one composite SVG document per panel.

    Raises ``LayoutInfeasibleError`` when no cell fits and ``ParseError``
    when a selected asset is not valid SVG.
    """
    cache = cache if cache is not None else AssetCache(read_text)
    grid, plans = plan_panels(items, settings)
    panels: List[str] = []
    for plan in plans:
        try:
            panels.append(render_panel(plan, settings, cache))
        except ParseError:
            logger.warning("panel %d aborted on an unreadable asset", plan.index + 1)
            raise
    logger.info(
        "built %d panel(s) for %d item(s) (%dx%d grid)", len(panels), len(items), grid.cols, grid.rows
    )
    return BuiltPanels(panels, grid.cols, grid.rows, grid.capacity_per_panel)


def sanitize_id(name: str) -> str:
    stem = re.sub(r"\.svg$", "", name.strip(), flags=re.IGNORECASE)
    return re.sub(r"[^\w.:-]+", "_", stem).strip("_")


def _reserve_unique_id(existing: Set[str], base: str) -> str:
    candidate = base
    suffix = 2
    while candidate in existing:
        candidate = f"{base}-{suffix}"
        suffix += 1
    existing.add(candidate)
    return candidate
