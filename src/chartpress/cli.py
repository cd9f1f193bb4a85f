"""Command-line interface for rendering and publishing Mermaid charts."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .charts import ChartSet, chart_item, extract
from .config import BACKENDS, IMAGE_FORMATS, ConfigError, Quality, RenderConfig, load_config
from .pipeline import ChartPipeline
from .renderers import build_renderer
from .uploads import DirectoryUploader


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _add_render_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--backend", choices=BACKENDS)
    parser.add_argument("--format", dest="image_format", choices=IMAGE_FORMATS)
    parser.add_argument("--quality", choices=[q.value for q in Quality])
    parser.add_argument("--theme")
    parser.add_argument("--timeout", type=float)
    parser.add_argument("--engine", help='In-process Mermaid engine as "module:callable"')
    parser.add_argument("--config", help="JSON renderer configuration file")


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="chartpress",
        description="Render Mermaid charts and publish them into ADF documents.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--verbose", action="store_true")

    subparsers = parser.add_subparsers(dest="command")

    render_parser = subparsers.add_parser("render", help="Render one Mermaid chart")
    render_parser.add_argument("input", nargs="?", help="Input .mmd file")
    render_parser.add_argument("--text", help="Raw Mermaid source")
    render_parser.add_argument("--stdout", action="store_true", help="Write image bytes to stdout")
    render_parser.add_argument("-o", "--output", help="Output image path")
    _add_render_options(render_parser)

    extract_parser = subparsers.add_parser("extract", help="List the charts of an ADF document")
    extract_parser.add_argument("input", help="Input ADF .json file")

    publish_parser = subparsers.add_parser("publish", help="Render, upload and rewrite an ADF document")
    publish_parser.add_argument("input", help="Input ADF .json file")
    publish_parser.add_argument("--assets-dir", required=True, help="Directory receiving uploaded images")
    publish_parser.add_argument("--stdout", action="store_true", help="Write the rewritten document to stdout")
    publish_parser.add_argument("-o", "--output", help="Output ADF .json path")
    _add_render_options(publish_parser)

    return parser


def _configure_logging(*, debug: bool, verbose: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def _read_text(path: str) -> str:
    input_path = Path(path)
    if not input_path.exists():
        raise CliError("E_IO_READ", f"input file not found: {input_path}", exit_code=2, file=str(input_path))
    try:
        return input_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CliError(
            "E_IO_READ",
            f"failed to read input file: {input_path}",
            hint=str(exc),
            exit_code=2,
            file=str(input_path),
        )


def _read_source(path: Optional[str], text: Optional[str]) -> tuple[str, Optional[Path]]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )
    if text is not None:
        return text, None
    if path:
        return _read_text(path), Path(path)
    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use a subcommand with FILE, --text, or pipe stdin.",
            exit_code=2,
        )
    data = sys.stdin.read()
    if not data.strip():
        raise CliError("E_ARGS", "stdin was empty", hint="Pipe Mermaid source into stdin.", exit_code=2)
    return data, None


def _read_document(path: str) -> Dict[str, Any]:
    raw = _read_text(path)
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CliError(
            "E_PARSE_JSON",
            f"failed to parse ADF document: {exc}",
            hint="Provide an ADF document as JSON.",
            exit_code=2,
            file=path,
        )
    if not isinstance(document, dict):
        raise CliError("E_PARSE_JSON", "ADF document must be a JSON object", exit_code=2, file=path)
    return document


def _write_bytes(path: Path, content: bytes) -> None:
    try:
        path.write_bytes(content)
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _config_from_args(args: argparse.Namespace) -> RenderConfig:
    return load_config(
        Path(args.config) if args.config else None,
        backend=args.backend,
        image_format=args.image_format,
        quality=args.quality,
        theme=args.theme,
        timeout=args.timeout,
        engine=args.engine,
    )


def _check_output_args(args: argparse.Namespace) -> None:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, ConfigError):
        return CliError(
            "E_CONFIG",
            str(exc),
            hint="Check --backend, --format, --quality, --engine and the --config file.",
            exit_code=3,
            retryable=True,
        )
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
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _handle_render(args: argparse.Namespace) -> int:
    _check_output_args(args)
    config = _config_from_args(args)
    renderer = build_renderer(config)
    source, source_path = _read_source(args.input, args.text)

    chart = chart_item(source if source.strip() else None)
    output_name = renderer.output_name(chart.name)
    data = renderer.render(ChartSet([chart]))[output_name]

    if args.stdout or (source_path is None and not args.output):
        sys.stdout.buffer.write(data)
        return 0

    suffix = Path(output_name).suffix
    output_path = Path(args.output) if args.output else source_path.with_suffix(suffix)
    _write_bytes(output_path, data)
    print(f"Wrote {output_path}")
    return 0


def _handle_extract(args: argparse.Namespace) -> int:
    charts = extract(_read_document(args.input))
    payload = [{"name": chart.name, "source": chart.source} for chart in charts]
    print(json.dumps(payload, indent=2))
    return 0


def _handle_publish(args: argparse.Namespace) -> int:
    _check_output_args(args)
    document = _read_document(args.input)
    config = _config_from_args(args)
    pipeline = ChartPipeline(build_renderer(config), DirectoryUploader(Path(args.assets_dir)))
    result = pipeline.publish(document)

    text = json.dumps(result.document, indent=2) + "\n"
    if args.stdout:
        sys.stdout.write(text)
    else:
        output_path = Path(args.output) if args.output else Path(args.input).with_suffix(".published.json")
        _write_bytes(output_path, text.encode("utf-8"))
        print(f"Wrote {output_path}")
    for name in result.failed_uploads:
        sys.stderr.write(f"warning: chart {name} was not uploaded\n")
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: render, extract, publish.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("CHARTPRESS_DEBUG") == "1"
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format
        _configure_logging(debug=debug_enabled, verbose=args.verbose)

        if args.command == "render":
            return _handle_render(args)
        if args.command == "extract":
            return _handle_extract(args)
        if args.command == "publish":
            return _handle_publish(args)

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: render, extract, publish.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint="Use subcommands: render, extract, publish.",
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
