"""Extract, render, upload and rewrite Mermaid charts in one publish run."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .charts import ChartSet, RenderedAsset, UploadedAsset, extract, rewrite
from .renderers import ChartRenderer

logger = logging.getLogger(__name__)


class Uploader(Protocol):
    def upload(self, name: str, data: bytes) -> Optional[UploadedAsset]:
        ...


@dataclass
class PublishResult:
    document: Dict[str, Any]
    charts: ChartSet
    rendered: Dict[str, RenderedAsset] = field(default_factory=dict)
    uploaded: Dict[str, Optional[UploadedAsset]] = field(default_factory=dict)

    @property
    def failed_uploads(self) -> List[str]:
        return sorted(name for name, asset in self.uploaded.items() if asset is None)


class ChartPipeline:
    """Drive one renderer and one uploader over an ADF document."""

    def __init__(self, renderer: ChartRenderer, uploader: Uploader) -> None:
        self.renderer = renderer
        self.uploader = uploader

    def extract(self, document: Mapping[str, Any]) -> ChartSet:
        return extract(document)

    def render(self, charts: ChartSet) -> Dict[str, RenderedAsset]:
        """Render ``charts``, keyed by each chart's extracted name."""
        if not len(charts):
            return {}
        images = self.renderer.render(charts)
        rendered: Dict[str, RenderedAsset] = {}
        for chart in charts:
            output_name = self.renderer.output_name(chart.name)
            rendered[chart.name] = RenderedAsset(
                name=output_name,
                data=images[output_name],
                mime_type=self.renderer.mime_type,
            )
        return rendered

    def upload(self, rendered: Mapping[str, RenderedAsset]) -> Dict[str, Optional[UploadedAsset]]:
        uploaded: Dict[str, Optional[UploadedAsset]] = {}
        for chart_name, asset in rendered.items():
            try:
                result = self.uploader.upload(asset.name, asset.data)
            except Exception as exc:
                logger.warning("failed to upload chart %s: %s", asset.name, exc)
                result = None
            if result is None:
                logger.warning("chart %s was not uploaded; keeping the code block", asset.name)
            else:
                logger.info("uploaded chart %s as %s/%s", asset.name, result.collection_id, result.asset_id)
            uploaded[chart_name] = result
        return uploaded

    def transform(self, charts: ChartSet) -> Dict[str, Optional[UploadedAsset]]:
        return self.upload(self.render(charts))

    def load(
        self, document: Mapping[str, Any], image_map: Mapping[str, Optional[UploadedAsset]]
    ) -> Dict[str, Any]:
        return rewrite(document, image_map)

    def publish(self, document: Mapping[str, Any]) -> PublishResult:
        charts = self.extract(document)
        rendered = self.render(charts)
        uploaded = self.upload(rendered)
        return PublishResult(
            document=self.load(document, uploaded),
            charts=charts,
            rendered=rendered,
            uploaded=uploaded,
        )

    def run(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        return self.publish(document).document


__all__ = ["ChartPipeline", "PublishResult", "Uploader"]
