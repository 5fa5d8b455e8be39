"""Class stylesheet parsing and per-element paint resolution."""
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, List, Optional

from .svgdoc import local_name

PAINT_PROPERTIES = ("fill", "stroke", "stroke-width")


@dataclass(frozen=True)
class Paint:
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[str] = None


class StyleSheet:
    """className -> declarations for one asset's embedded <style> blocks.

    Built fresh per document; class names like ``st0`` mean different
    colors in different files, so a sheet is never shared across assets.
    """

    def __init__(self, rules: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self._rules: Dict[str, Dict[str, str]] = rules or {}

    @classmethod
    def from_root(cls, root: ET.Element) -> "StyleSheet":
        rules: Dict[str, Dict[str, str]] = {}
        for style_node in root.iter():
            if not isinstance(style_node.tag, str) or local_name(style_node.tag) != "style":
                continue
            css_text = "".join(style_node.itertext())
            if not css_text:
                continue
            css_text = re.sub(r"/\*.*?\*/", "", css_text, flags=re.DOTALL)
            for selector_text, body in re.findall(r"([^{}]+)\{([^{}]*)\}", css_text):
                declarations = parse_declarations(body)
                if not declarations:
                    continue
                for selector in (s.strip() for s in selector_text.split(",")):
                    # Only simple class selectors like `.st0` or `path.st0`.
                    match = re.fullmatch(r"[A-Za-z]*\.([A-Za-z_][A-Za-z0-9_-]*)", selector)
                    if match:
                        rules.setdefault(match.group(1), {}).update(declarations)
        return cls(rules)

    def __contains__(self, class_name: str) -> bool:
        return class_name in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def class_names(self) -> List[str]:
        return list(self._rules)

    def rule(self, class_name: str) -> Dict[str, str]:
        return dict(self._rules.get(class_name, {}))

    def declarations_for(self, elem: ET.Element) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for class_name in (elem.get("class") or "").split():
            merged.update(self._rules.get(class_name, {}))
        return merged

    def paint_for(self, elem: ET.Element) -> Paint:
        return resolve_paint(elem, self)


def parse_declarations(body: str) -> Dict[str, str]:
    """Split a CSS declaration block on ';' and ':' with exact property names."""
    declarations: Dict[str, str] = {}
    for decl in body.split(";"):
        if ":" not in decl:
            continue
        key, value = decl.split(":", 1)
        key = key.strip().lower()
        value = value.strip()
        if value.endswith("!important"):
            value = value[: -len("!important")].strip()
        if key and value:
            declarations[key] = value
    return declarations


def format_declarations(declarations: Dict[str, str]) -> str:
    return ";".join(f"{key}:{value}" for key, value in declarations.items())


def resolve_paint(
    elem: ET.Element, sheet: StyleSheet, inherited: Optional[Paint] = None
) -> Paint:
    """Resolve fill/stroke/stroke-width: inline style > class rule > attribute > inherited."""
    class_decls = sheet.declarations_for(elem)
    inline_decls = parse_declarations(elem.get("style") or "")

    def _pick(prop: str, parent_value: Optional[str]) -> Optional[str]:
        for source in (inline_decls, class_decls):
            value = source.get(prop)
            if value and value.lower() != "inherit":
                return value
        value = elem.get(prop)
        if value and value.strip().lower() != "inherit":
            return value.strip()
        return parent_value

    parent = inherited or Paint()
    return Paint(
        fill=_pick("fill", parent.fill),
        stroke=_pick("stroke", parent.stroke),
        stroke_width=_pick("stroke-width", parent.stroke_width),
    )


def inline_style(elem: ET.Element, sheet: StyleSheet, paint: Paint) -> None:
    """Replace class/style scoping with plain paint attributes.

    Non-paint class and inline declarations (font-size, opacity, ...) are
    kept in a residual ``style`` attribute so dropping the class loses nothing.
    """
    residual = {
        key: value
        for key, value in sheet.declarations_for(elem).items()
        if key not in PAINT_PROPERTIES
    }
    residual.update(
        (key, value)
        for key, value in parse_declarations(elem.get("style") or "").items()
        if key not in PAINT_PROPERTIES
    )
    elem.attrib.pop("class", None)
    elem.attrib.pop("style", None)
    if residual:
        elem.set("style", format_declarations(residual))
    if paint.fill:
        elem.set("fill", paint.fill)
    if paint.stroke:
        elem.set("stroke", paint.stroke)
    if paint.stroke_width:
        elem.set("stroke-width", paint.stroke_width)
