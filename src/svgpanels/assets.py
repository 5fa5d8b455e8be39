"""Asset inspection helpers used ahead of panel generation."""
from __future__ import annotations

from typing import List, Optional, Tuple

from .colors import is_none, normalize_color
from .geometry import measure_content_bounds
from .styles import StyleSheet, resolve_paint
from .svgdoc import iter_elements, parse_root, resolve_viewbox

# Illustrator-style exports use 72 user units per inch.
DEFAULT_DPI = 72.0
MM_PER_INCH = 25.4


def detect_svg_colors(text: str) -> List[str]:
    """Unique normalized paint colors used by a document, in first-seen order."""
    root = parse_root(text)
    sheet = StyleSheet.from_root(root)
    seen: List[str] = []

    def _add(token: Optional[str]) -> None:
        if is_none(token):
            return
        color = normalize_color(token)
        if color not in seen:
            seen.append(color)

    for class_name in sheet.class_names():
        rule = sheet.rule(class_name)
        _add(rule.get("fill"))
        _add(rule.get("stroke"))
    for elem in iter_elements(root):
        paint = resolve_paint(elem, sheet)
        _add(paint.fill)
        _add(paint.stroke)
    return seen


def content_size_mm(text: str, dpi: float = DEFAULT_DPI) -> Optional[Tuple[float, float]]:
    """Physical (width, height) of the measured content, falling back to the viewbox."""
    root = parse_root(text)
    vb = resolve_viewbox(root)
    px_to_mm = MM_PER_INCH / dpi
    bounds = measure_content_bounds(vb, list(root))
    if bounds is not None:
        return bounds.width * px_to_mm, bounds.height * px_to_mm
    if vb.is_positive:
        return vb.width * px_to_mm, vb.height * px_to_mm
    return None
