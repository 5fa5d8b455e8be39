"""Command-line interface: build panels from SVG files on disk."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .assets import detect_svg_colors
from .composer import PanelItem, PanelSettings, build_panels, setting_name
from .errors import LayoutInfeasibleError, ParseError
from .export import combine_panels, export_file_names
from .layers import LAYER_PRESETS
from .layout import compute_grid_layout, panel_count

logger = logging.getLogger(__name__)

SUBCOMMANDS = "build, layout, colors"


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _add_settings_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--settings", help="JSON file with panel settings")
    parser.add_argument("--panel-width", type=float, dest="panelWidth")
    parser.add_argument("--panel-height", type=float, dest="panelHeight")
    parser.add_argument("--cell-size", type=float, dest="cellSize")
    parser.add_argument("--margin", type=float, dest="margin")
    parser.add_argument("--gutter", type=float, dest="gutter")


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="svgpanels",
        description="Arrange single-item SVG files onto grid panels for a cutting bed.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")

    subparsers = parser.add_subparsers(dest="command")

    build_parser = subparsers.add_parser("build", help="Generate panel SVGs")
    build_parser.add_argument("inputs", nargs="+", help="Input .svg files (panel order)")
    _add_settings_arguments(build_parser)
    build_parser.add_argument("--label-height", type=float, dest="labelHeight")
    build_parser.add_argument("--padding", type=float, dest="padding")
    build_parser.add_argument("--preset", choices=sorted(LAYER_PRESETS), help="Layer color preset")
    build_parser.add_argument("--borders", action="store_true", help="Draw cell borders")
    build_parser.add_argument("--remove-hole", action="store_true", help="Remove ornament hanging holes")
    build_parser.add_argument("--round-backer", action="store_true", help="Replace cut line with a round backer")
    build_parser.add_argument("-o", "--output-dir", help="Directory for panel files (default: cwd)")
    build_parser.add_argument("--base-name", default="panels", help="Output file base name")
    build_parser.add_argument("--combined", action="store_true", help="Also write one combined file")
    build_parser.add_argument("--stdout", action="store_true", help="Write combined panels to stdout")
    build_parser.add_argument(
        "--label-levels",
        type=int,
        default=0,
        help="Label each item with the folder this many levels above its parent (0 = parent folder)",
    )

    layout_parser = subparsers.add_parser("layout", help="Print grid capacity for settings")
    _add_settings_arguments(layout_parser)
    layout_parser.add_argument("--count", type=int, default=0, help="Item count for panel_count")

    colors_parser = subparsers.add_parser("colors", help="List paint colors used by SVG files")
    colors_parser.add_argument("inputs", nargs="+", help="Input .svg files")

    return parser


def folder_label(path: str, levels_up: int = 0) -> str:
    """Name of the folder ``levels_up`` levels above the file's parent; '' if none."""
    parents = Path(path).parents
    index = levels_up
    if index >= len(parents) - 1:
        return ""
    return parents[index].name


def _read_text(path: str) -> str:
    input_path = Path(path)
    if not input_path.exists():
        raise CliError("E_IO_READ", f"input file not found: {input_path}", exit_code=2, file=str(input_path))
    try:
        return input_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CliError(
            "E_IO_READ",
            f"failed to read input file: {input_path}",
            hint=str(exc),
            exit_code=2,
            file=str(input_path),
        )


def _settings_dict(args: argparse.Namespace) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if args.settings:
        try:
            data = json.loads(_read_text(args.settings))
        except json.JSONDecodeError as exc:
            raise CliError(
                "E_SETTINGS",
                f"settings file is not valid JSON: {exc}",
                exit_code=2,
                file=args.settings,
                line=exc.lineno,
                column=exc.colno,
            )
        if not isinstance(data, dict):
            raise CliError("E_SETTINGS", "settings file must hold a JSON object", exit_code=2, file=args.settings)
    for key in ("panelWidth", "panelHeight", "cellSize", "margin", "gutter", "labelHeight", "padding"):
        value = getattr(args, key, None)
        if value is not None:
            data[key] = value
    if getattr(args, "preset", None):
        for key in [k for k in data if setting_name(k) == "layer_rules"]:
            del data[key]
        data["layerPreset"] = args.preset
    for flag, key in (("borders", "showCellBorders"), ("remove_hole", "removeOrnamentHole"), ("round_backer", "addRoundBacker")):
        if getattr(args, flag, False):
            data[key] = True
    return data


def _load_settings(args: argparse.Namespace) -> PanelSettings:
    data = _settings_dict(args)
    try:
        return PanelSettings.from_dict(data)
    except TypeError as exc:
        raise CliError(
            "E_SETTINGS",
            f"incomplete settings: {exc}",
            hint="Provide panelWidth, panelHeight and cellSize via --settings or flags.",
            exit_code=2,
        )
    except ValueError as exc:
        raise CliError("E_SETTINGS", str(exc), exit_code=2)


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, ParseError):
        return CliError(
            exc.code,
            str(exc),
            hint=exc.hint or "Remove or repair the asset and retry.",
            exit_code=2,
            file=exc.asset_id,
            line=exc.line,
            column=exc.column,
        )
    if isinstance(exc, LayoutInfeasibleError):
        return CliError(exc.code, str(exc), hint=exc.hint, exit_code=3)
    if isinstance(exc, ValueError):
        return CliError("E_SETTINGS", str(exc), exit_code=2)
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "line": err.line,
            "column": err.column,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _handle_build(args: argparse.Namespace) -> int:
    if args.stdout and (args.output_dir or args.combined):
        raise CliError(
            "E_ARGS",
            "--stdout cannot be combined with --output-dir or --combined",
            hint="Choose either --stdout or file output.",
            exit_code=2,
        )
    if args.label_levels < 0:
        raise CliError("E_ARGS", "--label-levels must be >= 0", exit_code=2)

    settings = _load_settings(args)
    logger.debug("building panels for %d file(s)", len(args.inputs))
    items = [
        PanelItem(id=path, label=folder_label(path, args.label_levels), name=Path(path).name)
        for path in args.inputs
    ]
    built = build_panels(items, settings, read_text=_read_text)

    if args.stdout:
        sys.stdout.write(combine_panels(built.panels) + "\n")
        return 0

    out_dir = Path(args.output_dir) if args.output_dir else Path.cwd()
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CliError("E_IO_WRITE", f"cannot create output directory: {out_dir}", hint=str(exc), exit_code=4)
    for name, svg_text in zip(export_file_names(args.base_name, built.panel_count), built.panels):
        target = out_dir / name
        _write_text(target, svg_text)
        print(f"Wrote {target}")
    if args.combined and built.panels:
        target = out_dir / f"{args.base_name}_combined.svg"
        _write_text(target, combine_panels(built.panels))
        print(f"Wrote {target}")
    return 0


def _handle_layout(args: argparse.Namespace) -> int:
    if args.count < 0:
        raise CliError("E_ARGS", "--count must be >= 0", exit_code=2)
    settings = _load_settings(args)
    grid = compute_grid_layout(settings.grid_input())
    payload = {
        "cols": grid.cols,
        "rows": grid.rows,
        "capacity_per_panel": grid.capacity_per_panel,
        "panel_count": panel_count(args.count, grid.capacity_per_panel),
    }
    print(json.dumps(payload))
    return 0


def _handle_colors(args: argparse.Namespace) -> int:
    report: Dict[str, List[str]] = {}
    for path in args.inputs:
        try:
            report[path] = detect_svg_colors(_read_text(path))
        except ParseError as exc:
            exc.asset_id = path
            raise
    print(json.dumps(report, indent=2))
    return 0


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("SVGPANELS_DEBUG") == "1"
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]
    _configure_logging(debug_enabled)

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format

        if args.command == "build":
            return _handle_build(args)
        if args.command == "layout":
            return _handle_layout(args)
        if args.command == "colors":
            return _handle_colors(args)

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint=f"Use subcommands: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
