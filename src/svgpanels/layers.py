"""Color-layer classification: map cut/engrave/score colors to output paint."""
from __future__ import annotations

import enum
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .colors import colors_match, is_none, normalize_color
from .geometry import is_closed_path
from .styles import Paint, StyleSheet, inline_style, resolve_paint
from .svgdoc import iter_elements, local_name, remove_elements

logger = logging.getLogger(__name__)

SHAPE_TAGS = {"path", "rect", "circle", "ellipse", "polygon", "polyline", "line", "text", "use"}
CLOSED_SHAPE_TAGS = {"circle", "ellipse", "rect", "polygon"}
CONTAINER_TAGS = {"g", "a", "switch"}

DEFAULT_FILL = "#000000"
FILLED_STROKE_WIDTH = "1"
STROKED_STROKE_WIDTH = "0.5"


class Visibility(enum.Enum):
    HIDDEN = "hidden"
    SHOW_BLACK = "show-black"
    SHOW_COLOR = "show-color"

    @classmethod
    def parse(cls, value: "str | Visibility") -> "Visibility":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("_", "-")
        aliases = {"show-as-black": "show-black", "show-as-color": "show-color"}
        return cls(aliases.get(text, text))


class RenderMode(enum.Enum):
    FILL = "fill"
    STROKE = "stroke"

    @classmethod
    def parse(cls, value: "str | RenderMode") -> "RenderMode":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass(frozen=True)
class LayerRule:
    color: str
    visibility: Visibility
    render_mode: RenderMode
    output_color: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "color", normalize_color(self.color))
        object.__setattr__(self, "visibility", Visibility.parse(self.visibility))
        object.__setattr__(self, "render_mode", RenderMode.parse(self.render_mode))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LayerRule":
        color = data.get("color", data.get("matchColor", data.get("match_color")))
        if not color:
            raise ValueError("layer rule requires a color")
        render_mode = data.get("renderMode", data.get("render_mode", RenderMode.FILL.value))
        return cls(
            color=str(color),
            visibility=Visibility.parse(data.get("visibility", Visibility.SHOW_COLOR.value)),
            render_mode=RenderMode.parse(render_mode),
            output_color=data.get("outputColor", data.get("output_color")) or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "color": self.color,
            "visibility": self.visibility.value,
            "renderMode": self.render_mode.value,
        }
        if self.output_color:
            data["outputColor"] = self.output_color
        return data


LayerRules = Optional[Tuple[LayerRule, ...]]


def _rules(*specs: Tuple[str, Visibility, RenderMode, str]) -> Tuple[LayerRule, ...]:
    return tuple(LayerRule(color, vis, mode, out) for color, vis, mode, out in specs)


LAYER_PRESETS: Dict[str, LayerRules] = {
    # Passthrough: only style inlining, no filtering.
    "original": None,
    "standard": _rules(
        ("#0000ff", Visibility.SHOW_COLOR, RenderMode.STROKE, "#0000ff"),
        ("#00c100", Visibility.SHOW_COLOR, RenderMode.FILL, "#00c100"),
        ("#000000", Visibility.SHOW_COLOR, RenderMode.STROKE, "#000000"),
        ("#ff0000", Visibility.SHOW_COLOR, RenderMode.STROKE, "#ff0000"),
    ),
    # Hide the cut layer, engrave everything else as black fill.
    "inverted": _rules(
        ("#0000ff", Visibility.HIDDEN, RenderMode.FILL, "#000000"),
        ("#00c100", Visibility.SHOW_COLOR, RenderMode.FILL, "#000000"),
        ("#000000", Visibility.SHOW_COLOR, RenderMode.FILL, "#000000"),
        ("#ff0000", Visibility.SHOW_COLOR, RenderMode.STROKE, "#ff0000"),
    ),
}


def layer_preset(name: str) -> LayerRules:
    try:
        return LAYER_PRESETS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"unknown layer preset {name!r}; choose one of: {', '.join(LAYER_PRESETS)}"
        ) from None


def find_rule(color: Optional[str], rules: Sequence[LayerRule]) -> Optional[LayerRule]:
    if is_none(color):
        return None
    normalized = normalize_color(color)
    for rule in rules:
        if colors_match(normalized, rule.color):
            return rule
    return None


def can_fill(elem: ET.Element) -> bool:
    tag = local_name(elem.tag)
    if tag in CLOSED_SHAPE_TAGS:
        return True
    return tag == "path" and is_closed_path(elem.get("d"))


def apply_layer_rules(root: ET.Element, sheet: StyleSheet, rules: Optional[Sequence[LayerRule]]) -> int:
    """Inline paint on every shape node and, with rules, filter and recolor it.

    ``rules=None`` is passthrough: resolved paint is copied to plain
    attributes and nothing is removed. With rules, colors no rule matches are
    dropped along with hidden layers, then emptied groups are pruned.
    Returns the number of removed shape nodes.
    """
    doomed: List[ET.Element] = []
    for style_node in [e for e in iter_elements(root) if local_name(e.tag) == "style"]:
        doomed.append(style_node)
    remove_elements(root, doomed)

    marked: List[ET.Element] = []
    _walk(root, sheet, rules, Paint(), marked)
    remove_elements(root, marked)
    if rules is not None:
        _prune_empty_groups(root)
    if marked:
        logger.debug("layer rules removed %d shape node(s)", len(marked))
    return len(marked)


def _walk(
    node: ET.Element,
    sheet: StyleSheet,
    rules: Optional[Sequence[LayerRule]],
    inherited: Paint,
    marked: List[ET.Element],
) -> None:
    for child in list(node):
        if not isinstance(child.tag, str):
            continue
        tag = local_name(child.tag)
        paint = resolve_paint(child, sheet, inherited)
        if tag in CONTAINER_TAGS:
            inline_style(child, sheet, Paint())
            _walk(child, sheet, rules, paint, marked)
        elif tag in SHAPE_TAGS:
            if rules is None:
                inline_style(child, sheet, paint)
            elif not _classify(child, sheet, rules, paint):
                marked.append(child)
                continue
            _inline_descendants(child, sheet, paint)
        else:
            # defs, clipPath, symbol, ...: referenced content keeps its own colors.
            inline_style(child, sheet, paint)
            _inline_descendants(child, sheet, paint)


def _inline_descendants(node: ET.Element, sheet: StyleSheet, inherited: Paint) -> None:
    for child in list(node):
        if not isinstance(child.tag, str):
            continue
        paint = resolve_paint(child, sheet, inherited)
        inline_style(child, sheet, paint if paint != inherited else Paint())
        _inline_descendants(child, sheet, paint)


def _classify(elem: ET.Element, sheet: StyleSheet, rules: Sequence[LayerRule], paint: Paint) -> bool:
    """Recolor ``elem`` in place; False means it must be removed."""
    fill = paint.fill
    stroke = paint.stroke
    if fill is None and is_none(stroke):
        # SVG initial fill value.
        fill = DEFAULT_FILL
    has_fill = not is_none(fill)
    has_stroke = not is_none(stroke)

    primary = fill if has_fill else (stroke if has_stroke else None)
    rule = find_rule(primary, rules)
    if rule is None and has_fill and has_stroke:
        rule = find_rule(stroke, rules)
        if rule is not None:
            primary = stroke
    if rule is None or rule.visibility is Visibility.HIDDEN:
        return False

    if rule.output_color:
        target = rule.output_color
    elif rule.visibility is Visibility.SHOW_BLACK:
        target = "#000000"
    else:
        target = normalize_color(primary)

    inline_style(elem, sheet, Paint())
    if rule.render_mode is RenderMode.FILL:
        if has_fill or can_fill(elem):
            elem.set("fill", target)
            elem.set("stroke", "none")
        else:
            elem.set("fill", "none")
            elem.set("stroke", target)
            elem.set("stroke-width", paint.stroke_width or STROKED_STROKE_WIDTH)
    else:
        elem.set("fill", "none")
        elem.set("stroke", target)
        elem.set("stroke-width", paint.stroke_width or (FILLED_STROKE_WIDTH if has_fill else STROKED_STROKE_WIDTH))
    return True


def _prune_empty_groups(root: ET.Element) -> None:
    def _has_shape(node: ET.Element) -> bool:
        return any(local_name(e.tag) in SHAPE_TAGS for e in iter_elements(node) if e is not node)

    empty = [e for e in iter_elements(root) if local_name(e.tag) == "g" and not _has_shape(e)]
    remove_elements(root, empty)
