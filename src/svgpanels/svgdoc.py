"""Parsing and serialization helpers for single-item SVG documents."""
from __future__ import annotations

import math
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .errors import ParseError

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

DEFAULT_VIEWBOX = (0.0, 0.0, 100.0, 100.0)


@dataclass(frozen=True)
class ViewBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def min_dim(self) -> float:
        return min(self.width, self.height)

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def is_positive(self) -> bool:
        return self.width > 0 and self.height > 0


@dataclass(frozen=True)
class ParsedSvg:
    """A parsed asset: its resolved viewbox and serialized inner markup."""

    viewbox: ViewBox
    content: str


def parse_svg(text: str, *, asset_id: Optional[str] = None) -> ParsedSvg:
    root = parse_root(text, asset_id=asset_id)
    return ParsedSvg(viewbox=resolve_viewbox(root), content=inner_markup(root))


def parse_root(text: str, *, asset_id: Optional[str] = None) -> ET.Element:
    """Parse markup and return the <svg> element with SVG-qualified tags."""
    label = f" ({asset_id})" if asset_id else ""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        line, column = getattr(exc, "position", (None, None))
        location = (
            f" at line {line}, column {column}" if line is not None and column is not None else ""
        )
        raise ParseError(
            f"Invalid SVG{label}: parse error{location}",
            asset_id=asset_id,
            line=line,
            column=column,
            hint="Ensure the file is well-formed XML.",
        ) from exc

    svg = root if local_name(root.tag) == "svg" else None
    if svg is None:
        for node in root.iter():
            if isinstance(node.tag, str) and local_name(node.tag) == "svg":
                svg = node
                break
    if svg is None:
        raise ParseError(
            f"Invalid SVG{label}: missing <svg>",
            asset_id=asset_id,
            hint="The document root must be an <svg> element.",
        )
    _qualify_tags(svg)
    return svg


def resolve_viewbox(svg: ET.Element) -> ViewBox:
    view_box = svg.get("viewBox")
    if view_box:
        parts = [p for p in re.split(r"[\s,]+", view_box.strip()) if p]
        if len(parts) == 4:
            try:
                values = [float(p) for p in parts]
            except ValueError:
                values = []
            if values and all(math.isfinite(v) for v in values):
                return ViewBox(*values)

    x, y, width, height = DEFAULT_VIEWBOX
    width_attr = parse_length(svg.get("width"), None)
    height_attr = parse_length(svg.get("height"), None)
    if width_attr:
        width = width_attr
    if height_attr:
        height = height_attr
    return ViewBox(x, y, width, height)


def inner_markup(svg: ET.Element) -> str:
    return "".join(ET.tostring(child, encoding="unicode") for child in svg)


def iter_elements(node: ET.Element) -> Iterator[ET.Element]:
    """Iterate descendants (and node itself) skipping comments and PIs."""
    for elem in node.iter():
        if isinstance(elem.tag, str):
            yield elem


def parent_map(root: ET.Element) -> Dict[ET.Element, ET.Element]:
    return {child: parent for parent in root.iter() for child in parent}


def remove_elements(root: ET.Element, doomed: List[ET.Element]) -> None:
    if not doomed:
        return
    parents = parent_map(root)
    for elem in doomed:
        parent = parents.get(elem)
        if parent is not None and elem in list(parent):
            parent.remove(elem)


def parse_length(value: Optional[str], default: Optional[float]) -> Optional[float]:
    if value is None:
        return default
    match = re.match(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)", value)
    if match:
        return float(match.group(1))
    return default


def fmt(value: float, digits: int = 4) -> str:
    if math.isclose(value, round(value), abs_tol=1e-9):
        return str(int(round(value)))
    text = f"{value:.{digits}f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def serialize_document(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode")


def indent_tree(root: ET.Element) -> None:
    """Pretty-print whitespace; call before foreign content is attached.

    Whitespace inside <text> is rendered, so asset markup must never be
    re-indented.
    """
    ET.indent(root, space="  ")


def q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


def local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def namespace_of(tag: str) -> Optional[str]:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def _qualify_tags(root: ET.Element) -> None:
    # Documents without xmlns still have to serialize cleanly into an SVG-namespaced panel.
    for elem in root.iter():
        if isinstance(elem.tag, str) and not elem.tag.startswith("{"):
            elem.tag = q(elem.tag)
