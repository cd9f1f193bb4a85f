"""Public API for chartpress."""
from .charts import ChartItem, ChartSet, RenderedAsset, UploadedAsset, chart_name, extract, rewrite
from .colors import normalize_colors
from .config import ConfigError, Quality, RenderConfig, load_config
from .entities import decode_entities
from .pipeline import ChartPipeline, PublishResult
from .renderers import CanvasRenderer, CliRenderer, LibraryRenderer, RenderError, build_renderer

__all__ = [
    "CanvasRenderer",
    "ChartItem",
    "ChartPipeline",
    "ChartSet",
    "CliRenderer",
    "ConfigError",
    "LibraryRenderer",
    "PublishResult",
    "Quality",
    "RenderConfig",
    "RenderError",
    "RenderedAsset",
    "UploadedAsset",
    "build_renderer",
    "chart_name",
    "decode_entities",
    "extract",
    "load_config",
    "normalize_colors",
    "rewrite",
]
