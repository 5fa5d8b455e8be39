"""Error taxonomy shared by the panel engine and the CLI."""
from __future__ import annotations

from typing import Optional


class SvgPanelsError(ValueError):
    """Structured error with a stable code for CLI mapping."""

    code = "E_SVGPANELS"

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return self.message


class ParseError(SvgPanelsError):
    """Raised when source markup is malformed or has no <svg> root."""

    code = "E_PARSE_SVG"

    def __init__(
        self,
        message: str,
        *,
        asset_id: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.asset_id = asset_id
        self.line = line
        self.column = column


class LayoutInfeasibleError(SvgPanelsError):
    """Raised when the grid settings leave no room for a single cell."""

    code = "E_LAYOUT"

    def __init__(self, message: str, *, cols: int, rows: int, hint: Optional[str] = None) -> None:
        super().__init__(message, hint=hint)
        self.cols = cols
        self.rows = rows
