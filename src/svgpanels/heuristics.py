"""Geometry heuristics: ornament-hole removal and round-backer synthesis.

Everything here scores bounding boxes (size, aspect and position relative to
the viewbox); nothing inspects path interiors. A miss is never an error:
the caller gets a count or ``None`` and processing carries on.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from svgpathtools import Path as SvgPath

from .colors import colors_match, is_none, normalize_color
from .geometry import (
    Bounds,
    GeometryContext,
    evaluation_context,
    path_subpaths,
    rendered_elements,
    split_subpath_text,
    subpath_d,
    subpaths_bbox,
)
from .styles import StyleSheet, resolve_paint
from .svgdoc import ViewBox, fmt, iter_elements, local_name, q, remove_elements

logger = logging.getLogger(__name__)

DEFAULT_CUT_LINE_COLOR = "#0000ff"
BACKER_STROKE_COLOR = "#000000"

STANDALONE_HOLE_TAGS = {"circle", "ellipse", "path", "rect", "use", "polygon"}
CUT_LINE_TAGS = {"circle", "ellipse", "path"}
CUT_COLOR_SWEEP_TAGS = {"circle", "ellipse", "path", "line"}

Weights = Tuple[float, float, float, float]


@dataclass(frozen=True)
class HoleDetectionParams:
    """Empirical constants for the hanging-hole detector.

    Weights are (horizontal offset, vertical offset, roundness penalty,
    size ratio); lower scores are better candidates.
    """

    min_size_ratio: float = 0.02
    max_size_ratio: float = 0.10
    min_aspect: float = 0.85
    max_aspect: float = 1.18
    max_center_offset: float = 0.10
    min_top_offset: float = -0.05
    max_top_offset: float = 0.15
    subpath_weights: Weights = (2.0, 2.4, 1.2, 0.5)
    standalone_weights: Weights = (2.0, 2.2, 1.2, 0.6)
    max_subpath_removals: int = 3
    max_standalone_removals: int = 2
    standalone_max_top: float = 0.5
    cover_min_span: float = 0.70
    cover_max_top: float = 0.15
    cover_radius_ratio: float = 0.05
    cover_center_ratio: float = 0.06


DEFAULT_HOLE_PARAMS = HoleDetectionParams()


@dataclass(frozen=True)
class CutLine:
    element: ET.Element
    bbox: Bounds


def score_hole_candidate(
    bbox: Bounds, vb: ViewBox, weights: Weights, params: HoleDetectionParams = DEFAULT_HOLE_PARAMS
) -> Optional[float]:
    """Score a bbox as a hanging hole, or None when it fails a filter."""
    size = max(bbox.width, bbox.height)
    if size <= 0 or bbox.height <= 0:
        return None
    size_ratio = size / vb.min_dim
    if size_ratio < params.min_size_ratio or size_ratio > params.max_size_ratio:
        return None
    aspect = bbox.width / bbox.height
    if aspect < params.min_aspect or aspect > params.max_aspect:
        return None
    cx, cy = bbox.center
    dx = abs(cx - vb.center_x) / vb.width
    dy_top = (cy - vb.y) / vb.height
    if dx > params.max_center_offset:
        return None
    if dy_top < params.min_top_offset or dy_top > params.max_top_offset:
        return None
    w_dx, w_dy, w_round, w_size = weights
    return dx * w_dx + dy_top * w_dy + abs(1 - aspect) * w_round + size_ratio * w_size


def remove_ornament_hole(
    root: ET.Element, vb: ViewBox, params: HoleDetectionParams = DEFAULT_HOLE_PARAMS
) -> int:
    """Run both excision passes; returns how many hole fragments were removed.

    Must run while class styles are still present so the tree is intact.
    """
    if not vb.is_positive:
        return 0
    removed = _remove_hole_subpaths(root, vb, params)
    removed += _remove_standalone_holes(root, vb, params)
    if not removed:
        logger.debug("no ornament hole candidates found")
    return removed


def _remove_hole_subpaths(root: ET.Element, vb: ViewBox, params: HoleDetectionParams) -> int:
    candidates: List[Tuple[float, int, ET.Element, int]] = []
    parsed: Dict[ET.Element, List[SvgPath]] = {}
    with evaluation_context(root) as ctx:
        order = 0
        for path in rendered_elements(root):
            if local_name(path.tag) != "path" or not path.get("d"):
                continue
            try:
                subpaths = path_subpaths(path.get("d"))
                ctm = ctx.ctm(path)
                boxes = [
                    subpaths_bbox([subpath], ctm) if len(subpath) and subpath.isclosed() else None
                    for subpath in subpaths
                ]
            except ValueError as exc:
                logger.debug("skipping unparseable path data: %s", exc)
                continue
            if len(subpaths) < 2:
                continue
            parsed[path] = subpaths
            for index, bbox in enumerate(boxes):
                if bbox is None:
                    continue
                score = score_hole_candidate(bbox, vb, params.subpath_weights, params)
                if score is None:
                    continue
                candidates.append((score, order, path, index))
                order += 1

    if not candidates:
        return 0
    candidates.sort(key=lambda item: (item[0], item[1]))
    by_path: Dict[ET.Element, List[int]] = defaultdict(list)
    for _score, _order, path, index in candidates[: params.max_subpath_removals]:
        by_path[path].append(index)

    removed = 0
    for path, indices in by_path.items():
        subpaths = parsed[path]
        raw = split_subpath_text(path.get("d") or "")
        # Descending order keeps earlier indices valid.
        keep = list(range(len(subpaths)))
        for index in sorted(indices, reverse=True):
            if index < len(keep):
                keep.pop(index)
                removed += 1
        parts = []
        for index in keep:
            chunk = raw[index]
            if chunk[0] == "M" or index == 0:
                parts.append(chunk)
            else:
                # A relative moveto depends on the subpath that was removed before it.
                parts.append(subpath_d(subpaths[index]))
        path.set("d", " ".join(part for part in parts if part))
    logger.debug("removed %d hole subpath(s) from %d path(s)", removed, len(by_path))
    return removed


def _remove_standalone_holes(root: ET.Element, vb: ViewBox, params: HoleDetectionParams) -> int:
    scored: List[Tuple[float, int, ET.Element, Bounds]] = []
    with evaluation_context(root) as ctx:
        for order, elem in enumerate(rendered_elements(root)):
            if local_name(elem.tag) not in STANDALONE_HOLE_TAGS:
                continue
            bbox = _safe_bbox(ctx, elem)
            if bbox is None:
                continue
            score = score_hole_candidate(bbox, vb, params.standalone_weights, params)
            if score is not None:
                scored.append((score, order, elem, bbox))

    scored.sort(key=lambda item: (item[0], item[1]))
    doomed = [
        elem
        for _score, _order, elem, bbox in scored[: params.max_standalone_removals]
        if (bbox.center[1] - vb.y) / vb.height <= params.standalone_max_top
    ]
    remove_elements(root, doomed)
    return len(doomed)


def cover_ornament_hole(
    root: ET.Element,
    vb: ViewBox,
    background: str = "#ffffff",
    params: HoleDetectionParams = DEFAULT_HOLE_PARAMS,
) -> bool:
    """Paint a background disc over a hole fused into a continuous stroked outline.

    Runs after layer processing, so only inline ``stroke`` attributes count.
    """
    if not vb.is_positive:
        return False
    found = False
    with evaluation_context(root) as ctx:
        for path in rendered_elements(root):
            if local_name(path.tag) != "path" or not path.get("d"):
                continue
            if is_none(path.get("stroke")):
                continue
            bbox = _safe_bbox(ctx, path)
            if bbox is None:
                continue
            if bbox.y > vb.y + vb.height * params.cover_max_top:
                continue
            if max(bbox.width, bbox.height) / vb.min_dim < params.cover_min_span:
                continue
            found = True
            break
    if not found:
        logger.debug("no stroked outline reaches the hole region; nothing to cover")
        return False
    ET.SubElement(
        root,
        q("circle"),
        {
            "cx": fmt(vb.center_x),
            "cy": fmt(vb.y + vb.height * params.cover_center_ratio),
            "r": fmt(vb.min_dim * params.cover_radius_ratio),
            "fill": background,
            "stroke": "none",
            "data-hole-cover": "true",
        },
    )
    return True


def detect_cut_line(
    root: ET.Element, sheet: StyleSheet, cut_color: str = DEFAULT_CUT_LINE_COLOR
) -> Optional[CutLine]:
    """Widest circle/ellipse/path whose stroke matches the cut color.

    Width, not area, decides: fragments of the cut line can be taller than
    the outline's body is wide.
    """
    best: Optional[CutLine] = None
    with evaluation_context(root) as ctx:
        for elem in rendered_elements(root):
            if local_name(elem.tag) not in CUT_LINE_TAGS:
                continue
            stroke = resolve_paint(elem, sheet).stroke
            if is_none(stroke) or not colors_match(normalize_color(stroke), cut_color):
                continue
            bbox = _safe_bbox(ctx, elem)
            if bbox is None or bbox.width <= 0:
                continue
            if best is None or bbox.width > best.bbox.width:
                best = CutLine(elem, bbox)
    if best is None:
        logger.debug("no cut line stroked in %s", cut_color)
    return best


def round_backer_circle(cut_bbox: Optional[Bounds], vb: ViewBox) -> Tuple[float, float, float]:
    """(cx, cy, r) of the backer; anchored to the cut line's bottom to skip the hanging tab."""
    if cut_bbox is None:
        diameter = vb.min_dim * 0.95
        return vb.center_x, vb.y + vb.height / 2, diameter / 2
    diameter = cut_bbox.width
    cx = cut_bbox.x + cut_bbox.width / 2
    cy = cut_bbox.y + cut_bbox.height - diameter / 2
    return cx, cy, diameter / 2


def add_round_backer(
    root: ET.Element,
    vb: ViewBox,
    cut_line: Optional[CutLine],
    stroke_width: float = 0.5,
    cut_color: str = DEFAULT_CUT_LINE_COLOR,
) -> ET.Element:
    """Replace the cut line with a synthesized circular outline."""
    cx, cy, r = round_backer_circle(cut_line.bbox if cut_line else None, vb)
    if cut_line is not None:
        plain = StyleSheet()
        doomed = [cut_line.element]
        for elem in iter_elements(root):
            if local_name(elem.tag) not in CUT_COLOR_SWEEP_TAGS or elem is cut_line.element:
                continue
            stroke = resolve_paint(elem, plain).stroke
            if not is_none(stroke) and colors_match(normalize_color(stroke), cut_color):
                doomed.append(elem)
        remove_elements(root, doomed)
    else:
        logger.debug("round backer falls back to the viewbox circle")
    return ET.SubElement(
        root,
        q("circle"),
        {
            "cx": fmt(cx),
            "cy": fmt(cy),
            "r": fmt(r),
            "fill": "none",
            "stroke": BACKER_STROKE_COLOR,
            "stroke-width": fmt(stroke_width),
        },
    )


def _safe_bbox(ctx: GeometryContext, elem: ET.Element) -> Optional[Bounds]:
    try:
        bbox = ctx.element_bbox(elem)
    except (ValueError, ZeroDivisionError, OverflowError) as exc:
        logger.debug("bbox failed for <%s>: %s", local_name(elem.tag), exc)
        return None
    if bbox is None or not bbox.is_finite():
        return None
    return bbox
