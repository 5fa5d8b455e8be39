"""Label sizing: the largest font size that fits a box, plus its baseline."""
from __future__ import annotations

import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from .geometry import Bounds

try:
    from PIL import ImageFont
except ImportError:  # pragma: no cover - Pillow required via project dependencies
    ImageFont = None

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "Roboto"
GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "monospace": ["Courier New", "Courier", "Liberation Mono", "DejaVu Sans Mono"],
    "roboto": ["Roboto", "Liberation Sans", "DejaVu Sans"],
}

REFERENCE_SIZE = 100.0
FALLBACK_FONT_SIZE = 12.0
MIN_FONT_SIZE = 1.0
MAX_FONT_SIZE = 2000.0
FIT_MARGIN = 0.99


@dataclass(frozen=True)
class TextMetrics:
    width: float
    height: float
    ascent: float
    descent: float


@dataclass(frozen=True)
class TextFit:
    font_size: float
    x: float
    y: float


def estimate_metrics(text: str, size: float) -> TextMetrics:
    return TextMetrics(
        width=len(text) * size * 0.6,
        height=size * 1.2,
        ascent=size * 0.8,
        descent=size * 0.2,
    )


class _TextMeasurer:
    """Caches Pillow fonts and measures text at arbitrary sizes."""

    FONT_DIRS = [
        Path("/System/Library/Fonts"),
        Path("/System/Library/Fonts/Supplemental"),
        Path("/Library/Fonts"),
        Path("~/Library/Fonts").expanduser(),
        Path("~/.fonts").expanduser(),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("C:/Windows/Fonts"),
    ]

    def __init__(self) -> None:
        self._font_cache: Dict[Tuple[str, int], Optional["ImageFont.FreeTypeFont"]] = {}
        self._font_paths: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    @contextmanager
    def session(self) -> Iterator["_TextMeasurer"]:
        with self._lock:
            yield self

    def font(self, size: float, family: Optional[str]) -> Optional["ImageFont.FreeTypeFont"]:
        if ImageFont is None:
            return None
        key_size = max(1, int(round(size)))
        family = family or DEFAULT_FONT_FAMILY
        cache_key = (family.lower(), key_size)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        candidates: List[str] = []
        for fam in GENERIC_FONT_FALLBACKS.get(family.lower(), [family]):
            resolved = self._locate_font(fam)
            if resolved:
                candidates.append(resolved)
        candidates.append("DejaVuSans.ttf")

        font = None
        for candidate in candidates:
            try:
                path, index = self._parse_font_candidate(candidate)
                font = ImageFont.truetype(path, key_size, index=index)
                break
            except OSError:
                continue
        if font is None:
            try:
                font = ImageFont.load_default(size=key_size)
            except (TypeError, OSError):
                font = None
        if font is not None and not isinstance(font, ImageFont.FreeTypeFont):
            # Bitmap fallback fonts ignore the requested size.
            font = None
        if font is None:
            logger.debug("no scalable font for %r; using estimated metrics", family)
        self._font_cache[cache_key] = font
        return font

    def measure(self, text: str, family: Optional[str], size: float) -> TextMetrics:
        font = self.font(size, family)
        if font is None:
            return estimate_metrics(text, size)
        key_size = max(1, int(round(size)))
        ratio = size / key_size
        try:
            width = float(font.getlength(text)) * ratio
            ascent, descent = font.getmetrics()
        except (AttributeError, OSError):
            return estimate_metrics(text, size)
        ascent = float(ascent) * ratio
        descent = float(descent) * ratio
        height = ascent + descent
        if width <= 0 or height <= 0:
            return estimate_metrics(text, size)
        return TextMetrics(width=width, height=height, ascent=ascent, descent=descent)

    def _locate_font(self, family: str) -> Optional[str]:
        key = family.lower()
        if key in self._font_paths:
            return self._font_paths[key]
        normalized = re.sub(r"[^a-z0-9]+", "", family, flags=re.IGNORECASE).lower()
        aliases = {normalized, normalized + "regular", normalized + "mt", normalized + "psmt"}
        best_match: Optional[Tuple[int, str]] = None
        if normalized:
            for directory in self.FONT_DIRS:
                if not directory.exists():
                    continue
                try:
                    for pattern in ("*.ttf", "*.ttc", "*.otf"):
                        for path in directory.rglob(pattern):
                            stem = re.sub(r"[^a-z0-9]+", "", path.stem, flags=re.IGNORECASE).lower()
                            if stem in aliases:
                                score = 0
                            elif stem.startswith(normalized):
                                score = 1
                            elif normalized in stem:
                                score = 2
                            else:
                                continue
                            candidate = f"{path};0" if pattern == "*.ttc" else str(path)
                            if best_match is None or score < best_match[0]:
                                best_match = (score, candidate)
                except OSError:
                    continue
        resolved = best_match[1] if best_match else None
        self._font_paths[key] = resolved
        return resolved

    @staticmethod
    def _parse_font_candidate(candidate: str) -> Tuple[str, int]:
        if ";" in candidate:
            path, idx = candidate.split(";", 1)
            try:
                return path, int(idx)
            except ValueError:
                return path, 0
        return candidate, 0


_TEXT_MEASURER = _TextMeasurer()


def measure_text(text: str, family: Optional[str], size: float) -> TextMetrics:
    with _TEXT_MEASURER.session() as measurer:
        return measurer.measure(text, family, size)


def fit_text(text: str, font_family: Optional[str], box: Bounds) -> TextFit:
    """Largest font size (in box units) that keeps ``text`` inside ``box``.

    The label is horizontally centered (``text-anchor="middle"``) and its
    baseline sits one descent above the box bottom.
    """
    if not text or box.width <= 0 or box.height <= 0:
        return TextFit(FALLBACK_FONT_SIZE, box.x + box.width / 2, box.y + box.height)

    with _TEXT_MEASURER.session() as measurer:
        measured = measurer.measure(text, font_family, REFERENCE_SIZE)
        measured_height = measured.height if measured.height > 0 else REFERENCE_SIZE * 1.2
        measured_width = measured.width if measured.width > 0 else len(text) * REFERENCE_SIZE * 0.6

        height_scale = (box.height * FIT_MARGIN) / measured_height
        width_scale = (box.width * FIT_MARGIN) / measured_width
        scale = min(height_scale, width_scale)
        font_size = max(MIN_FONT_SIZE, min(REFERENCE_SIZE * scale, MAX_FONT_SIZE))

        final = measurer.measure(text, font_family, font_size)

    return TextFit(font_size=font_size, x=box.x + box.width / 2, y=box.y + box.height - final.descent)
