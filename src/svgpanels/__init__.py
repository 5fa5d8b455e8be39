"""Public API for svgpanels."""
from .assets import content_size_mm, detect_svg_colors
from .composer import AssetCache, BuiltPanels, PanelItem, PanelSettings, ProcessingOptions, build_panels, plan_panels
from .errors import LayoutInfeasibleError, ParseError, SvgPanelsError
from .export import combine_panels, export_file_names
from .layers import LAYER_PRESETS, LayerRule, RenderMode, Visibility, layer_preset
from .layout import GridInput, GridLayout, Placement, compute_grid_layout, panel_count
from .svgdoc import ParsedSvg, ViewBox, parse_svg
from .textfit import TextFit, fit_text

__version__ = "0.1.0"

__all__ = [
    "AssetCache",
    "BuiltPanels",
    "GridInput",
    "GridLayout",
    "LAYER_PRESETS",
    "LayerRule",
    "LayoutInfeasibleError",
    "PanelItem",
    "PanelSettings",
    "ParseError",
    "ParsedSvg",
    "Placement",
    "ProcessingOptions",
    "RenderMode",
    "SvgPanelsError",
    "TextFit",
    "ViewBox",
    "Visibility",
    "build_panels",
    "combine_panels",
    "compute_grid_layout",
    "content_size_mm",
    "detect_svg_colors",
    "export_file_names",
    "fit_text",
    "layer_preset",
    "panel_count",
    "parse_svg",
    "plan_panels",
]
