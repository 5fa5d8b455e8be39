"""Canonical color tokens and tolerant color matching."""
from __future__ import annotations

import re
from typing import Optional, Tuple

NAMED_COLORS = {
    "black": "#000000",
    "white": "#ffffff",
    "red": "#ff0000",
    "green": "#00ff00",
    "blue": "#0000ff",
    "lime": "#00ff00",
    "none": "none",
    "transparent": "none",
}

CHANNEL_TOLERANCE = 10

_RGB_RE = re.compile(r"rgb\s*\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)")
_HEX6_RE = re.compile(r"^#([0-9a-f]{2})([0-9a-f]{2})([0-9a-f]{2})$")


def normalize_color(token: str) -> str:
    """Return lowercase #rrggbb, "none", or the lowercased token if unrecognized."""
    c = token.strip().lower()
    if c.startswith("#"):
        if len(c) == 4:
            return "#" + c[1] * 2 + c[2] * 2 + c[3] * 2
        return c
    if c in NAMED_COLORS:
        return NAMED_COLORS[c]
    match = _RGB_RE.match(c)
    if match:
        channels = (min(255, int(v)) for v in match.groups())
        return "#" + "".join(f"{v:02x}" for v in channels)
    return c


def is_none(token: Optional[str]) -> bool:
    return token is None or normalize_color(token) == "none"


def hex_channels(token: str) -> Optional[Tuple[int, int, int]]:
    match = _HEX6_RE.match(normalize_color(token))
    if not match:
        return None
    return int(match.group(1), 16), int(match.group(2), 16), int(match.group(3), 16)


def colors_match(a: str, b: str, tolerance: int = CHANNEL_TOLERANCE) -> bool:
    c1 = normalize_color(a)
    c2 = normalize_color(b)
    if c1 == c2:
        return True
    rgb1 = hex_channels(c1)
    rgb2 = hex_channels(c2)
    if rgb1 is None or rgb2 is None:
        return False
    return all(abs(x - y) <= tolerance for x, y in zip(rgb1, rgb2))
