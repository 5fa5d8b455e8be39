"""Naming and combination of generated panel documents."""
from __future__ import annotations

from typing import List, Sequence


def _pad_index(i: int, total: int) -> str:
    width = max(3, len(str(total)))
    return str(i).zfill(width)


def export_file_names(base_name: str, panel_count: int) -> List[str]:
    """``base.svg`` for a single panel, else ``base_001.svg``, ``base_002.svg``..."""
    names: List[str] = []
    for i in range(panel_count):
        suffix = f"_{_pad_index(i + 1, panel_count)}" if panel_count > 1 else ""
        names.append(f"{base_name}{suffix}.svg")
    return names


def combine_panels(panels: Sequence[str]) -> str:
    total = len(panels)
    return "\n\n".join(f"<!-- Panel {i + 1} of {total} -->\n{svg}" for i, svg in enumerate(panels))
