"""Geometry evaluator: transforms, svgpathtools outlines and element bounding boxes."""
from __future__ import annotations

import logging
import math
import re
import xml.etree.ElementTree as ET
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from svgpathtools import Arc, Line
from svgpathtools import Path as SvgPath
from svgpathtools import parse_path as parse_path_data
from svgpathtools.path import transform as transform_path

from .styles import parse_declarations
from .svgdoc import XLINK_NS, ViewBox, fmt, local_name, parent_map, parse_length, q

logger = logging.getLogger(__name__)

Affine = Tuple[float, float, float, float, float, float]
Point = Tuple[float, float]

IDENTITY: Affine = (1.0, 0.0, 0.0, 1.0, 0.0, 0.0)

SHAPE_TAGS = {"path", "rect", "circle", "ellipse", "line", "polyline", "polygon", "text", "use", "image"}
NON_RENDERING_TAGS = {
    "defs",
    "clipPath",
    "mask",
    "symbol",
    "style",
    "title",
    "desc",
    "metadata",
    "linearGradient",
    "radialGradient",
    "pattern",
    "marker",
    "filter",
    "script",
}
_MAX_USE_DEPTH = 8


@dataclass(frozen=True)
class Bounds:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_extents(cls, min_x: float, min_y: float, max_x: float, max_y: float) -> "Bounds":
        return cls(min_x, min_y, max_x - min_x, max_y - min_y)

    @classmethod
    def from_viewbox(cls, viewbox: ViewBox) -> "Bounds":
        return cls(viewbox.x, viewbox.y, viewbox.width, viewbox.height)

    @property
    def extents(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height

    @property
    def center(self) -> Point:
        return self.x + self.width / 2, self.y + self.height / 2

    def union(self, other: Optional["Bounds"]) -> "Bounds":
        if other is None:
            return self
        a = self.extents
        b = other.extents
        return Bounds.from_extents(min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3]))

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.width, self.height))


def _merge(current: Optional[Bounds], new: Optional[Bounds]) -> Optional[Bounds]:
    if new is None:
        return current
    if current is None:
        return new
    return current.union(new)


# --------------------------------------------------------------------------- affine


def mul_affine(m1: Affine, m2: Affine) -> Affine:
    # Composition m = m1 * m2
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def apply_affine(m: Affine, p: Point) -> Point:
    a, b, c, d, e, f = m
    x, y = p
    return (a * x + c * y + e, b * x + d * y + f)


def parse_transform(transform: Optional[str]) -> Affine:
    m = IDENTITY
    if not transform:
        return m
    for fn, arg_text in re.findall(r"([a-zA-Z]+)\s*\(([^)]*)\)", transform):
        values = [float(chunk) for chunk in re.split(r"[,\s]+", arg_text.strip()) if chunk]
        name = fn.lower()
        if name == "matrix" and len(values) == 6:
            t = (values[0], values[1], values[2], values[3], values[4], values[5])
        elif name == "translate" and values:
            t = (1.0, 0.0, 0.0, 1.0, values[0], values[1] if len(values) > 1 else 0.0)
        elif name == "scale" and values:
            sx = values[0]
            sy = values[1] if len(values) > 1 else sx
            t = (sx, 0.0, 0.0, sy, 0.0, 0.0)
        elif name == "rotate" and values:
            angle = math.radians(values[0])
            cos_v = math.cos(angle)
            sin_v = math.sin(angle)
            t = (cos_v, sin_v, -sin_v, cos_v, 0.0, 0.0)
            if len(values) >= 3:
                cx, cy = values[1], values[2]
                t = mul_affine(mul_affine((1.0, 0.0, 0.0, 1.0, cx, cy), t), (1.0, 0.0, 0.0, 1.0, -cx, -cy))
        elif name == "skewx" and len(values) == 1:
            t = (1.0, 0.0, math.tan(math.radians(values[0])), 1.0, 0.0, 0.0)
        elif name == "skewy" and len(values) == 1:
            t = (1.0, math.tan(math.radians(values[0])), 0.0, 1.0, 0.0, 0.0)
        else:
            continue
        m = mul_affine(m, t)
    return m


def _is_axis_aligned(m: Affine) -> bool:
    return abs(m[1]) < 1e-12 and abs(m[2]) < 1e-12


# --------------------------------------------------------------------------- path data

_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_PATH_DATA_ERRORS = (ValueError, IndexError, TypeError, ZeroDivisionError)


def split_subpath_text(d: str) -> List[str]:
    """Split raw path data at every move command, keeping the command."""
    return [chunk.strip() for chunk in re.split(r"(?=[Mm])", d.strip()) if chunk.strip()]


def path_subpaths(d: str) -> List[SvgPath]:
    """One svgpathtools ``Path`` per moveto chunk of ``d``, in document order.

    Chunks are parsed separately so index ``i`` always lines up with
    ``split_subpath_text(d)[i]``; a relative ``m`` continues from where the
    previous chunk left the current point. Raises ``ValueError`` on
    malformed data.
    """
    subpaths: List[SvgPath] = []
    current = 0j
    for chunk in split_subpath_text(d or ""):
        if chunk[0] not in "Mm":
            raise ValueError(f"path data must start with a moveto: {chunk[:20]!r}")
        try:
            sub = parse_path_data(chunk, current_pos=current)
        except _PATH_DATA_ERRORS as exc:
            raise ValueError(f"malformed path data {chunk[:20]!r}: {exc}") from exc
        subpaths.append(sub)
        current = sub.end if len(sub) else _moveto_point(chunk, current)
    return subpaths


def _moveto_point(chunk: str, current: complex) -> complex:
    numbers = [float(v) for v in _NUMBER_RE.findall(chunk[1:])[:2]]
    if len(numbers) < 2:
        raise ValueError(f"moveto needs two coordinates: {chunk[:20]!r}")
    point = complex(numbers[0], numbers[1])
    return point if chunk[0] == "M" else current + point


def subpath_d(subpath: SvgPath) -> str:
    return subpath.d(use_closed_attrib=True)


def is_closed_path(d: Optional[str]) -> bool:
    if not d:
        return False
    return bool(re.search(r"[zZ]", d))


# --------------------------------------------------------------------------- bounding boxes


def _affine_matrix(m: Affine) -> np.ndarray:
    a, b, c, d, e, f = m
    return np.array([[a, c, e], [b, d, f], [0.0, 0.0, 1.0]])


def _bounds_of_points(points: Iterable[Point]) -> Optional[Bounds]:
    xs: List[float] = []
    ys: List[float] = []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    if not xs:
        return None
    return Bounds.from_extents(min(xs), min(ys), max(xs), max(ys))


def subpaths_bbox(subpaths: Iterable[SvgPath], m: Affine = IDENTITY) -> Optional[Bounds]:
    """Tight bbox of svgpathtools paths after mapping through ``m``.

    Axis-aligned transforms map the curve bbox corners directly; anything
    with rotation or skew transforms the curves first.
    """
    aligned = _is_axis_aligned(m)
    points: List[Point] = []
    for subpath in subpaths:
        if not len(subpath):
            continue
        try:
            if aligned:
                xmin, xmax, ymin, ymax = subpath.bbox()
                points.append(apply_affine(m, (xmin, ymin)))
                points.append(apply_affine(m, (xmax, ymax)))
            else:
                xmin, xmax, ymin, ymax = transform_path(subpath, _affine_matrix(m)).bbox()
                points.extend([(xmin, ymin), (xmax, ymax)])
        except _PATH_DATA_ERRORS as exc:
            raise ValueError(f"cannot bound path: {exc}") from exc
    return _bounds_of_points(points)


def path_data_bbox(d: str, m: Affine = IDENTITY) -> Optional[Bounds]:
    return subpaths_bbox(path_subpaths(d), m)


def _ellipse_path(cx: float, cy: float, rx: float, ry: float) -> SvgPath:
    right = complex(cx + rx, cy)
    left = complex(cx - rx, cy)
    radius = complex(rx, ry)
    return SvgPath(
        Arc(right, radius, 0.0, False, True, left),
        Arc(left, radius, 0.0, False, True, right),
    )


def _polyline_path(points: Sequence[Point], closed: bool) -> SvgPath:
    corners = [complex(x, y) for x, y in points]
    if closed and corners[0] != corners[-1]:
        corners.append(corners[0])
    return SvgPath(*(Line(a, b) for a, b in zip(corners, corners[1:])))


def _points_attr(value: Optional[str]) -> List[Point]:
    numbers = [float(v) for v in _NUMBER_RE.findall(value or "")]
    return [(numbers[i], numbers[i + 1]) for i in range(0, len(numbers) - 1, 2)]


def _num(elem: ET.Element, attr: str, default: float = 0.0) -> float:
    value = parse_length(elem.get(attr), default)
    return default if value is None else value


def shape_subpaths(elem: ET.Element) -> Optional[List[SvgPath]]:
    """Outline of a basic shape as svgpathtools paths, or None for non-geometric nodes."""
    tag = local_name(elem.tag)
    if tag == "path":
        return path_subpaths(elem.get("d") or "")
    if tag in ("rect", "image"):
        x, y = _num(elem, "x"), _num(elem, "y")
        w, h = _num(elem, "width"), _num(elem, "height")
        if w <= 0 or h <= 0:
            return []
        return [_polyline_path([(x, y), (x + w, y), (x + w, y + h), (x, y + h)], closed=True)]
    if tag == "circle":
        r = _num(elem, "r")
        if r <= 0:
            return []
        return [_ellipse_path(_num(elem, "cx"), _num(elem, "cy"), r, r)]
    if tag == "ellipse":
        rx, ry = _num(elem, "rx"), _num(elem, "ry")
        if rx <= 0 or ry <= 0:
            return []
        return [_ellipse_path(_num(elem, "cx"), _num(elem, "cy"), rx, ry)]
    if tag == "line":
        start = (_num(elem, "x1"), _num(elem, "y1"))
        end = (_num(elem, "x2"), _num(elem, "y2"))
        if start == end:
            return []
        return [_polyline_path([start, end], closed=False)]
    if tag in ("polyline", "polygon"):
        pts = _points_attr(elem.get("points"))
        if len(pts) < 2:
            return []
        return [_polyline_path(pts, closed=tag == "polygon")]
    return None


# --------------------------------------------------------------------------- evaluation context


class GeometryContext:
    """Bounding-box evaluator bound to one document tree.

    Acquire through :func:`evaluation_context`; the id index and memo are
    dropped when the ``with`` block exits.
    """

    def __init__(self, root: ET.Element) -> None:
        self.root = root
        self._ids: Dict[str, ET.Element] = {}
        self._parents: Dict[ET.Element, ET.Element] = {}
        self._memo: Dict[Tuple[int, Affine], Optional[Bounds]] = {}
        self._open = False

    def _acquire(self) -> None:
        self._ids = {elem.get("id"): elem for elem in self.root.iter() if isinstance(elem.tag, str) and elem.get("id")}
        self._parents = parent_map(self.root)
        self._open = True

    def _release(self) -> None:
        self._ids = {}
        self._parents = {}
        self._memo = {}
        self._open = False

    def _check_open(self) -> None:
        if not self._open:
            raise RuntimeError("geometry context used outside its evaluation scope")

    def ctm(self, elem: ET.Element) -> Affine:
        """Transform from ``elem`` local space to root user space (own transform included)."""
        self._check_open()
        lineage: List[ET.Element] = []
        cursor: Optional[ET.Element] = elem
        while cursor is not None and cursor is not self.root:
            lineage.append(cursor)
            cursor = self._parents.get(cursor)
        m = IDENTITY
        for node in reversed(lineage):
            m = mul_affine(m, parse_transform(node.get("transform")))
        return m

    def element_bbox(self, elem: ET.Element) -> Optional[Bounds]:
        """Bbox of ``elem`` in root user space; None when it has no measurable geometry."""
        self._check_open()
        parent = self._parents.get(elem)
        base = self.ctm(parent) if parent is not None and parent is not self.root else IDENTITY
        return self._bbox(elem, base, 0)

    def subpath_bbox(self, elem: ET.Element, subpath: SvgPath) -> Optional[Bounds]:
        self._check_open()
        return subpaths_bbox([subpath], self.ctm(elem))

    def content_bounds(self, elements: Iterable[ET.Element]) -> Optional[Bounds]:
        self._check_open()
        bounds: Optional[Bounds] = None
        for elem in elements:
            bounds = _merge(bounds, self._bbox(elem, IDENTITY, 0))
        return bounds

    def _bbox(self, elem: ET.Element, base: Affine, depth: int) -> Optional[Bounds]:
        if not isinstance(elem.tag, str):
            return None
        key = (id(elem), base)
        if key in self._memo:
            return self._memo[key]
        result = self._compute_bbox(elem, base, depth)
        self._memo[key] = result
        return result

    def _compute_bbox(self, elem: ET.Element, base: Affine, depth: int) -> Optional[Bounds]:
        tag = local_name(elem.tag)
        if tag in NON_RENDERING_TAGS or _display_none(elem):
            return None
        m = mul_affine(base, parse_transform(elem.get("transform")))
        if tag == "text":
            return _text_bbox(elem, m)
        if tag == "use":
            if depth >= _MAX_USE_DEPTH:
                return None
            href = elem.get("href") or elem.get(f"{{{XLINK_NS}}}href") or ""
            target = self._ids.get(href[1:]) if href.startswith("#") else None
            if target is None:
                return None
            offset = (1.0, 0.0, 0.0, 1.0, _num(elem, "x"), _num(elem, "y"))
            m = mul_affine(m, offset)
            if local_name(target.tag) == "symbol":
                return self._children_bbox(target, m, depth + 1)
            return self._bbox_detached(target, m, depth + 1)
        subpaths = shape_subpaths(elem)
        if subpaths is not None:
            return subpaths_bbox(subpaths, m)
        return self._children_bbox(elem, m, depth)

    def _bbox_detached(self, elem: ET.Element, base: Affine, depth: int) -> Optional[Bounds]:
        # Referenced targets render even when they live inside <defs>.
        tag = local_name(elem.tag)
        if tag in NON_RENDERING_TAGS and tag != "symbol":
            return None
        m = mul_affine(base, parse_transform(elem.get("transform")))
        subpaths = shape_subpaths(elem)
        if subpaths is not None:
            return subpaths_bbox(subpaths, m)
        if tag == "text":
            return _text_bbox(elem, m)
        return self._children_bbox(elem, m, depth)

    def _children_bbox(self, elem: ET.Element, m: Affine, depth: int) -> Optional[Bounds]:
        bounds: Optional[Bounds] = None
        for child in elem:
            bounds = _merge(bounds, self._bbox(child, m, depth))
        return bounds


def rendered_elements(node: ET.Element) -> Iterator[ET.Element]:
    """Document-order walk that skips defs, clipPath, symbol and other non-rendering subtrees."""
    if not isinstance(node.tag, str) or local_name(node.tag) in NON_RENDERING_TAGS:
        return
    yield node
    for child in node:
        yield from rendered_elements(child)


@contextmanager
def evaluation_context(root: ET.Element) -> Iterator[GeometryContext]:
    ctx = GeometryContext(root)
    ctx._acquire()
    try:
        yield ctx
    finally:
        ctx._release()


def measure_content_bounds(viewbox: ViewBox, elements: Sequence[ET.Element]) -> Optional[Bounds]:
    """Tight bbox of rendered content, or None when measurement fails or is empty.

    Content is copied into a scratch <svg> so measurement never touches the
    caller's tree.
    """
    scratch = ET.Element(
        q("svg"),
        {"viewBox": f"{fmt(viewbox.x)} {fmt(viewbox.y)} {fmt(viewbox.width)} {fmt(viewbox.height)}"},
    )
    for elem in elements:
        scratch.append(deepcopy(elem))
    try:
        with evaluation_context(scratch) as ctx:
            bounds = ctx.content_bounds(list(scratch))
    except (ValueError, ZeroDivisionError, OverflowError) as exc:
        logger.debug("content measurement failed: %s", exc)
        return None
    if bounds is None or not bounds.is_finite():
        return None
    if bounds.width <= 0 or bounds.height <= 0:
        return None
    return bounds


def _display_none(elem: ET.Element) -> bool:
    if (elem.get("display") or "").strip() == "none":
        return True
    return parse_declarations(elem.get("style") or "").get("display") == "none"


def _text_bbox(elem: ET.Element, m: Affine) -> Optional[Bounds]:
    from .textfit import measure_text

    content = "".join(elem.itertext()).strip()
    if not content:
        return None
    style = parse_declarations(elem.get("style") or "")
    size = parse_length(style.get("font-size") or elem.get("font-size"), 16.0) or 16.0
    family = style.get("font-family") or elem.get("font-family")
    metrics = measure_text(content, family, size)
    x = _num(elem, "x")
    y = _num(elem, "y")
    anchor = style.get("text-anchor") or elem.get("text-anchor") or "start"
    if anchor == "middle":
        x -= metrics.width / 2
    elif anchor == "end":
        x -= metrics.width
    corners = [(x, y - metrics.ascent), (x + metrics.width, y + metrics.descent)]
    corners += [(x, y + metrics.descent), (x + metrics.width, y - metrics.ascent)]
    return _bounds_of_points(apply_affine(m, p) for p in corners)
