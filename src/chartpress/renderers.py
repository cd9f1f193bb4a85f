"""Mermaid rendering backends.

Every backend turns a :class:`~chartpress.charts.ChartSet` into a mapping of
output name to image bytes and always returns one entry per chart: a chart
that fails to render gets a fixed placeholder image instead.
"""
from __future__ import annotations

import importlib
import json
import logging
import re
import shutil
import subprocess
import tempfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple
from xml.sax.saxutils import escape

from .charts import PNG_EXTENSION, SVG_EXTENSION, ChartItem, ChartSet, with_extension
from .colors import normalize_colors
from .config import ConfigError, RenderConfig
from .entities import decode_entities
from .raster import SurfaceFactory, create_surface, scaled_size, svg_size, transparent_png
from .resources import load_error_chart_template

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
SVG_MIME_TYPE = "image/svg+xml"
PNG_MIME_TYPE = "image/png"

MERMAID_CLI = "mmdc"
NPX_MERMAID_CLI = ("npx", "--yes", "@mermaid-js/mermaid-cli@11")

Engine = Callable[[str, Mapping[str, Any]], str]


class RenderError(RuntimeError):
    """Failure to render a single chart, with a stable code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ChartRenderer(Protocol):
    mime_type: str

    def output_name(self, name: str) -> str:
        ...

    def render(self, charts: ChartSet) -> Dict[str, bytes]:
        ...


def error_chart_svg(name: str) -> bytes:
    """Placeholder SVG shown in place of a chart that failed to render."""
    return load_error_chart_template().replace("{name}", escape(name)).encode("utf-8")


def ensure_xml_declaration(svg_text: str) -> str:
    svg_text = svg_text.lstrip()
    if svg_text.startswith("<?xml"):
        return svg_text
    return f"{XML_DECLARATION}\n{svg_text}"


def clean_svg(svg_text: str) -> str:
    """Make renderer SVG output acceptable to Confluence."""
    svg_text = decode_entities(svg_text)
    svg_text = normalize_colors(svg_text)
    return ensure_xml_declaration(svg_text)


_BACKGROUND_STYLE_RE = re.compile(r'style="[^"]*background[^"]*"', re.IGNORECASE)
_ROOT_SVG_RE = re.compile(r"<svg\b[^>]*>", re.IGNORECASE)
_STYLE_ATTR_RE = re.compile(r'(\sstyle=")([^"]*)(")')


def force_transparent_background(svg_text: str) -> str:
    svg_text = _BACKGROUND_STYLE_RE.sub('style=""', svg_text)
    match = _ROOT_SVG_RE.search(svg_text)
    if match is None:
        return svg_text
    tag = match.group(0)
    if _STYLE_ATTR_RE.search(tag):
        tag = _STYLE_ATTR_RE.sub(
            lambda m: f"{m.group(1)}background: transparent;{(' ' + m.group(2)) if m.group(2) else ''}{m.group(3)}",
            tag,
            count=1,
        )
    else:
        tag = f'<svg style="background: transparent"{tag[4:]}'
    return svg_text[: match.start()] + tag + svg_text[match.end() :]


def resolve_engine(spec: str) -> Engine:
    """Load an in-process Mermaid engine from a ``"module:callable"`` reference."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f'engine must look like "module:callable", got {spec!r}')
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"failed to import engine module {module_name!r}: {exc}") from exc
    engine = getattr(module, attr, None)
    if not callable(engine):
        raise ConfigError(f"engine {spec!r} is not callable")
    return engine


def _require_engine(config: RenderConfig, engine: Optional[Engine]) -> Engine:
    if engine is not None:
        return engine
    if not config.engine:
        raise ConfigError(f'backend "{config.backend}" requires an engine ("module:callable")')
    return resolve_engine(config.engine)


def _trim(detail: str) -> str:
    detail = detail.strip()
    if len(detail) > 240:
        detail = detail[:240] + "..."
    return detail


class CliRenderer:
    """Renders charts with the external mermaid-cli tool, one process per chart."""

    def __init__(self, config: RenderConfig) -> None:
        self.config = config
        self.raster = config.image_format == "png"
        self.mime_type = PNG_MIME_TYPE if self.raster else SVG_MIME_TYPE

    def output_name(self, name: str) -> str:
        return with_extension(name, PNG_EXTENSION) if self.raster else name

    def command(self) -> List[str]:
        if self.config.command:
            return list(self.config.command)
        mmdc = shutil.which(MERMAID_CLI)
        if mmdc:
            return [mmdc]
        return list(NPX_MERMAID_CLI)

    def placeholder(self, name: str) -> bytes:
        return transparent_png() if self.raster else error_chart_svg(name)

    def render(self, charts: ChartSet) -> Dict[str, bytes]:
        items = list(charts)
        if not items:
            return {}
        try:
            scratch = Path(tempfile.mkdtemp(prefix="chartpress-"))
        except OSError as exc:
            logger.warning("failed to create temp directory for mermaid-cli: %s", exc)
            return {self.output_name(c.name): self.placeholder(c.name) for c in items}
        try:
            try:
                config_path = self._write_theme_config(scratch)
            except OSError as exc:
                logger.warning("failed to write mermaid config in %s: %s", scratch, exc)
                return {self.output_name(c.name): self.placeholder(c.name) for c in items}
            if self.config.workers > 1 and len(items) > 1:
                with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                    rendered = list(pool.map(lambda c: self._render_one(c, scratch, config_path), items))
            else:
                rendered = [self._render_one(c, scratch, config_path) for c in items]
            return dict(rendered)
        finally:
            _remove_scratch(scratch)

    def _write_theme_config(self, scratch: Path) -> Optional[Path]:
        if not self.config.has_custom_theme:
            return None
        path = scratch / "mermaid-config.json"
        payload = {"theme": self.config.theme, "themeVariables": dict(self.config.theme_variables)}
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def _render_one(self, chart: ChartItem, scratch: Path, config_path: Optional[Path]) -> Tuple[str, bytes]:
        name = self.output_name(chart.name)
        try:
            data = self._run_tool(chart, scratch, config_path)
        except Exception as exc:
            logger.warning("failed to render chart %s: %s", chart.name, exc)
            return name, self.placeholder(chart.name)
        logger.info("rendered chart %s (%d bytes)", name, len(data))
        return name, data

    def _run_tool(self, chart: ChartItem, scratch: Path, config_path: Optional[Path]) -> bytes:
        stem = with_extension(chart.name, "")
        input_path = scratch / f"{stem}.mmd"
        output_path = scratch / f"{stem}{PNG_EXTENSION if self.raster else SVG_EXTENSION}"
        input_path.write_text(chart.source, encoding="utf-8")

        argv = self.command() + ["-i", str(input_path), "-o", str(output_path), "-b", "transparent", "-q"]
        if config_path is not None:
            argv += ["-c", str(config_path)]
        if self.raster:
            argv += ["-s", f"{self.config.quality.scale:g}"]
        logger.debug("running %s", " ".join(argv))

        try:
            proc = subprocess.run(
                argv,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RenderError("E_RENDER_TIMEOUT", f"mermaid-cli timed out after {self.config.timeout:g}s") from exc
        except OSError as exc:
            raise RenderError("E_RENDER_PROCESS", f"failed to execute mermaid-cli: {exc}") from exc
        if proc.returncode != 0:
            detail = _trim(proc.stderr or "")
            raise RenderError(
                "E_RENDER_PROCESS",
                f"mermaid-cli exited with status {proc.returncode}: {detail or 'unknown error'}",
            )
        if proc.stderr and "warn" not in proc.stderr.lower():
            logger.warning("mermaid-cli stderr for %s: %s", chart.name, _trim(proc.stderr))

        try:
            data = output_path.read_bytes()
        except OSError as exc:
            raise RenderError("E_RENDER_OUTPUT", f"mermaid-cli produced no readable output: {exc}") from exc
        if not data:
            raise RenderError("E_RENDER_OUTPUT", "mermaid-cli produced an empty file")
        if self.raster:
            return data
        try:
            svg_text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise RenderError("E_RENDER_OUTPUT", f"mermaid-cli output is not UTF-8: {exc}") from exc
        return clean_svg(svg_text).encode("utf-8")


def _remove_scratch(scratch: Path) -> None:
    try:
        shutil.rmtree(scratch)
    except OSError as exc:
        logger.warning("failed to clean up temp directory %s: %s", scratch, exc)


class LibraryRenderer:
    """Renders charts to SVG with an in-process Mermaid engine."""

    mime_type = SVG_MIME_TYPE

    def __init__(self, config: RenderConfig, engine: Optional[Engine] = None) -> None:
        self.config = config
        self.engine = _require_engine(config, engine)

    def output_name(self, name: str) -> str:
        return name

    def render(self, charts: ChartSet) -> Dict[str, bytes]:
        mermaid_config = self.config.mermaid_config()
        captured: Dict[str, bytes] = {}
        for chart in charts:
            try:
                svg_text = self.engine(chart.source, mermaid_config)
                if not isinstance(svg_text, str) or not svg_text.strip():
                    raise RenderError("E_RENDER_ENGINE", "engine returned no SVG markup")
                data = clean_svg(force_transparent_background(svg_text)).encode("utf-8")
            except Exception as exc:
                logger.warning("failed to render chart %s: %s", chart.name, exc)
                captured[chart.name] = error_chart_svg(chart.name)
                continue
            captured[chart.name] = data
            logger.info("rendered chart %s", chart.name)
        return captured


class CanvasRenderer:
    """Renders charts to SVG in-process and rasterizes them onto an off-screen surface."""

    mime_type = PNG_MIME_TYPE

    def __init__(
        self,
        config: RenderConfig,
        engine: Optional[Engine] = None,
        surface_factory: Optional[SurfaceFactory] = None,
    ) -> None:
        self.config = config
        self.engine = _require_engine(config, engine)
        self.surface_factory = surface_factory or create_surface

    def output_name(self, name: str) -> str:
        return with_extension(name, PNG_EXTENSION)

    def render(self, charts: ChartSet) -> Dict[str, bytes]:
        mermaid_config = self.config.mermaid_config()
        scale = self.config.quality.scale
        captured: Dict[str, bytes] = {}
        for chart in charts:
            name = self.output_name(chart.name)
            try:
                captured[name] = self._rasterize(self.engine(chart.source, mermaid_config), scale)
            except Exception as exc:
                logger.warning("failed to render chart %s: %s", chart.name, exc)
                captured[name] = transparent_png()
                continue
            logger.info(
                "rendered chart %s (quality: %s, %d bytes)", name, self.config.quality.value, len(captured[name])
            )
        return captured

    def _rasterize(self, svg_text: str, scale: float) -> bytes:
        if not isinstance(svg_text, str) or not svg_text.strip():
            raise RenderError("E_RENDER_ENGINE", "engine returned no SVG markup")
        width, height = scaled_size(svg_size(svg_text), scale)
        surface = self.surface_factory(width, height)
        surface.draw_vector_at(svg_text, scale)
        data = surface.encode("PNG")
        if not data:
            raise RenderError("E_RENDER_RASTER", "surface produced no image data")
        return data


def build_renderer(
    config: RenderConfig,
    *,
    engine: Optional[Engine] = None,
    surface_factory: Optional[SurfaceFactory] = None,
) -> ChartRenderer:
    """Pick the backend named by ``config.backend``."""
    if config.backend == "cli":
        return CliRenderer(config)
    if config.backend == "library":
        return LibraryRenderer(config, engine=engine)
    if config.backend == "canvas":
        return CanvasRenderer(config, engine=engine, surface_factory=surface_factory)
    raise ConfigError(f"unknown backend {config.backend!r}")


__all__ = [
    "CanvasRenderer",
    "ChartRenderer",
    "CliRenderer",
    "LibraryRenderer",
    "RenderError",
    "build_renderer",
    "clean_svg",
    "error_chart_svg",
]
