"""Grid geometry for fixed-size panels."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from .errors import LayoutInfeasibleError


@dataclass(frozen=True)
class GridInput:
    panel_width: float
    panel_height: float
    cell_size: float
    margin: float = 0.0
    gutter: float = 0.0


@dataclass(frozen=True)
class Placement:
    index_in_panel: int
    x: float
    y: float
    size: float


@dataclass(frozen=True)
class GridLayout:
    cols: int
    rows: int
    capacity_per_panel: int
    placements: Tuple[Placement, ...]

    @property
    def feasible(self) -> bool:
        return self.capacity_per_panel > 0


def compute_grid_layout(spec: GridInput) -> GridLayout:
    """Row-major cell placements; capacity is zero when nothing fits."""
    if spec.cell_size <= 0 or spec.panel_width <= 0 or spec.panel_height <= 0:
        return GridLayout(0, 0, 0, ())
    usable_w = spec.panel_width - spec.margin * 2
    usable_h = spec.panel_height - spec.margin * 2
    step = spec.cell_size + spec.gutter
    if step <= 0:
        return GridLayout(0, 0, 0, ())

    cols = math.floor((usable_w + spec.gutter) / step)
    rows = math.floor((usable_h + spec.gutter) / step)
    capacity = max(0, cols * rows)
    if cols <= 0 or rows <= 0:
        return GridLayout(cols, rows, 0, ())

    placements = tuple(
        Placement(
            index_in_panel=r * cols + c,
            x=spec.margin + c * step,
            y=spec.margin + r * step,
            size=spec.cell_size,
        )
        for r in range(rows)
        for c in range(cols)
    )
    return GridLayout(cols, rows, capacity, placements)


def panel_count(item_count: int, capacity_per_panel: int) -> int:
    if capacity_per_panel <= 0:
        return 0
    return math.ceil(item_count / capacity_per_panel)


def require_feasible(spec: GridInput, grid: GridLayout) -> None:
    """Raise LayoutInfeasibleError naming the dimension that blocks the grid."""
    if grid.feasible:
        return
    if spec.cell_size <= 0:
        hint = "Set a cell size greater than 0."
    elif spec.panel_width <= 0 or spec.panel_height <= 0:
        hint = "Set a panel width and height greater than 0."
    elif grid.cols <= 0:
        hint = (
            f"Cell size {spec.cell_size:g} does not fit the usable panel width "
            f"{spec.panel_width - 2 * spec.margin:g}; reduce the cell size or margin, or widen the panel."
        )
    else:
        hint = (
            f"Cell size {spec.cell_size:g} does not fit the usable panel height "
            f"{spec.panel_height - 2 * spec.margin:g}; reduce the cell size or margin, or make the panel taller."
        )
    raise LayoutInfeasibleError(
        "no cell fits on the panel with the current size settings",
        cols=grid.cols,
        rows=grid.rows,
        hint=hint,
    )
