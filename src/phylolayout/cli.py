"""Command-line interface for phylolayout render workflows."""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .errors import ConfigurationError, InputShapeError, LayoutInfeasibleError, PhylolayoutError
from .layout import TreeOptions, layout_tree
from .resources import load_options_reference
from .svg import to_svg
from .tree import tree_from_mapping


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


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="phylolayout",
        description="Lay out phylogenetic trees and render them to SVG.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")

    subparsers = parser.add_subparsers(dest="command")

    render_parser = subparsers.add_parser("render", help="Render a JSON tree to SVG")
    render_parser.add_argument("input", nargs="?", help="Input .json tree file")
    render_parser.add_argument("--text", help="Raw JSON tree source")
    render_parser.add_argument("--stdout", action="store_true", help="Write output to stdout")
    render_parser.add_argument("-o", "--output", help="Output path")
    render_parser.add_argument(
        "--format", choices=["svg", "json"], default="svg", help="SVG document or drawing program JSON"
    )
    render_parser.add_argument("--options", help="JSON file with layout options")
    render_parser.add_argument("--width", help="Width: 300, 300pt or 80%%")
    render_parser.add_argument("--height", help="Height: 300, 300pt or auto")
    render_parser.add_argument("--available-width", type=float, help="Width that percentages resolve against")
    render_parser.add_argument("--orientation", choices=["horizontal", "vertical"])
    render_parser.add_argument("--cladogram", action="store_true", default=None)
    render_parser.add_argument("--scale-bar", action="store_true", default=None)
    render_parser.add_argument("--axis", action="store_true", default=None)
    render_parser.add_argument("--scale-length", help="Scale bar length or auto")
    render_parser.add_argument("--scale-unit", help="Unit suffix for the scale label")
    render_parser.add_argument("--root-length", type=float)
    render_parser.add_argument("--tip-label-size", type=float)
    render_parser.add_argument("--tip-label-italic", action="store_true", default=None)
    render_parser.add_argument("--font-family")
    render_parser.add_argument("--trim-quotes", action="store_true", help="Strip quotes around node names")
    render_parser.add_argument("--background", default="#fff", help="SVG background fill or none")

    subparsers.add_parser("options", help="Print the layout option reference")

    return parser


def _read_input(path: Optional[str], text: Optional[str]) -> tuple[str, str, Optional[Path]]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )

    if text is not None:
        return text, "<text>", None

    if path:
        input_path = Path(path)
        if not input_path.exists():
            raise CliError(
                "E_IO_READ",
                f"input file not found: {input_path}",
                exit_code=2,
                file=str(input_path),
            )
        try:
            return input_path.read_text(), str(input_path), input_path
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read input file: {input_path}",
                hint=str(exc),
                exit_code=2,
                file=str(input_path),
            )

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use a subcommand with FILE, --text, or pipe stdin.",
            exit_code=2,
        )

    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_ARGS",
            "stdin was empty",
            hint="Pipe a JSON tree into stdin.",
            exit_code=2,
        )
    return data, "<stdin>", None


def _load_json(source: str, source_name: str) -> Any:
    try:
        return json.loads(source)
    except json.JSONDecodeError as exc:
        raise CliError(
            "E_PARSE_JSON",
            f"failed to parse JSON from {source_name}: {exc.msg}",
            hint="Provide the tree as a JSON object with name/length/children fields.",
            exit_code=2,
            file=None if source_name.startswith("<") else source_name,
            line=exc.lineno,
            column=exc.colno,
        )
    except RecursionError:
        raise CliError(
            "E_PARSE_JSON",
            f"failed to parse JSON from {source_name}: nesting too deep for the JSON decoder",
            hint="Flatten the input or raise the interpreter recursion limit.",
            exit_code=2,
            file=None if source_name.startswith("<") else source_name,
        )


def _load_options(path: Optional[str]) -> TreeOptions:
    if not path:
        return TreeOptions()
    options_path = Path(path)
    try:
        text = options_path.read_text()
    except OSError as exc:
        raise CliError(
            "E_IO_READ",
            f"failed to read options file: {options_path}",
            hint=str(exc),
            exit_code=2,
            file=str(options_path),
        )
    return TreeOptions.from_mapping(_load_json(text, str(options_path)))


def _option_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for name in (
        "width",
        "height",
        "available_width",
        "orientation",
        "cladogram",
        "scale_bar",
        "axis",
        "scale_unit",
        "root_length",
        "tip_label_size",
        "tip_label_italic",
        "font_family",
    ):
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    if args.scale_length is not None:
        overrides["scale_length"] = _parse_scale_length(args.scale_length)
    return overrides


def _parse_scale_length(value: str) -> Any:
    if value.strip().lower() == "auto":
        return "auto"
    try:
        return float(value)
    except ValueError:
        raise CliError(
            "E_ARGS",
            f"--scale-length must be a number or auto, got {value!r}",
            hint="Use e.g. --scale-length 0.1 or --scale-length auto.",
            exit_code=2,
        )


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content)
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
    if isinstance(exc, InputShapeError):
        return CliError(
            exc.code,
            str(exc),
            hint="Check the tree JSON: children must be arrays, names strings, lengths non-negative numbers.",
            exit_code=2,
        )
    if isinstance(exc, ConfigurationError):
        return CliError(
            exc.code,
            str(exc),
            hint="Run `phylolayout options` for the accepted values.",
            exit_code=3,
        )
    if isinstance(exc, LayoutInfeasibleError):
        return CliError(
            exc.code,
            str(exc),
            hint="Increase --width/--height, reduce --tip-label-size or --root-length.",
            exit_code=3,
        )
    if isinstance(exc, PhylolayoutError):
        return CliError(exc.code, str(exc), exit_code=3)
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


def _handle_render(args: argparse.Namespace) -> int:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )

    source, source_name, source_path = _read_input(args.input, args.text)
    tree = tree_from_mapping(_load_json(source, source_name), trim_quotes=args.trim_quotes)
    options = _load_options(args.options)
    overrides = _option_overrides(args)
    if overrides:
        options = dataclasses.replace(options, **overrides)

    program = layout_tree(tree, options)
    if args.format == "json":
        content = json.dumps(program.to_dict(), indent=2)
        suffix = ".layout.json"
    else:
        content = to_svg(program, background=args.background)
        suffix = ".svg"

    if args.stdout or source_path is None:
        sys.stdout.write(content)
        if not content.endswith("\n"):
            sys.stdout.write("\n")
        return 0

    output_path = Path(args.output) if args.output else source_path.with_name(source_path.stem + suffix)
    _write_text(output_path, content)
    print(f"Wrote {output_path}")
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: render, options.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("PHYLOLAYOUT_DEBUG") == "1"
    if debug_enabled:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(name)s: %(message)s")
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format

        if args.command == "render":
            return _handle_render(args)
        if args.command == "options":
            print(load_options_reference())
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: render, options.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint="Use subcommands: render, options.",
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
