from __future__ import annotations

import asyncio
import io
import re
from typing import Iterator, Optional
from urllib.parse import urlsplit

from PIL import Image

from ...utils.exceptions import EncodeError, RenderError
from ...utils.logging import get_logger
from ..markers.compositor import Compositor
from ..markers.encoder import OutputEncoder
from ..markers.geometry import to_display, to_pixels_at_scale
from ..markers.models import (
    MarkerRecord,
    PixelBuffer,
    PreviewResult,
    Rect,
    ReplacementOutput,
    SourceDocument,
    SourceKind,
    StyleSpec,
)
from ..markers.rasterizer import ImageRasterDocument, PdfRasterDocument, Rasterizer, RasterizerOptions
from ..markers.source_loader import IMAGE_EXTENSIONS, extension_for_format
from ..markers.synthesizer import MarkerSynthesizer
from .pipeline_settings import PipelineSettings

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def validate_target_url(value: str) -> str:
    """Return `value` with a scheme, or raise EncodeError if it is not a usable link.

    A missing scheme is read as https. The host must contain a dot and end in
    a label of at least two characters.
    """
    candidate = (value or "").strip()
    if not candidate:
        raise EncodeError("link must not be empty")
    if not _SCHEME.match(candidate):
        candidate = "https://" + candidate

    try:
        hostname = urlsplit(candidate).hostname or ""
    except ValueError as exc:
        raise EncodeError(f"not a valid link: {value!r}") from exc
    if "." not in hostname or len(hostname.rsplit(".", 1)[-1]) < 2:
        raise EncodeError(f"not a valid link: {value!r}")
    return candidate


def output_filename(source: SourceDocument, extension: Optional[str] = None) -> str:
    ext = extension or source.extension or ("pdf" if source.kind is SourceKind.PDF else "png")
    return f"modified_{source.stem}.{ext}"


def target_rect(marker: MarkerRecord, style: StyleSpec) -> Rect:
    """New marker goes at the old marker's origin with the chosen side length."""
    return Rect(marker.location.x, marker.location.y, style.size, style.size)


class MarkerReplacementService:
    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        *,
        rasterizer: Optional[Rasterizer] = None,
    ) -> None:
        self.logger = get_logger(__name__)
        self.settings = settings or PipelineSettings()
        self.rasterizer = rasterizer or Rasterizer(
            RasterizerOptions(anti_aliasing=self.settings.raster_anti_aliasing)
        )
        self.synthesizer = MarkerSynthesizer()
        self.compositor = Compositor()
        self.encoder = OutputEncoder(jpeg_quality=self.settings.output_jpeg_quality)

    def _checked_payload(self, payload: str) -> str:
        if self.settings.require_url_payload:
            return validate_target_url(payload)
        if not payload:
            raise EncodeError("marker payload must not be empty")
        return payload

    def _page_index(self, marker: MarkerRecord, document: PdfRasterDocument | ImageRasterDocument) -> int:
        page_index = marker.page_number - 1
        if not 0 <= page_index < document.page_count:
            raise RenderError(
                f"marker {marker.id} refers to page {marker.page_number}, "
                f"document has {document.page_count}"
            )
        return page_index

    def _check_marker_fits(
        self,
        style: StyleSpec,
        document: PdfRasterDocument | ImageRasterDocument,
        page_index: int,
    ) -> None:
        # Checked before synthesis; the marker image is allocated at full size.
        page_width, page_height = document.page_size(page_index)
        if style.size > max(page_width, page_height):
            raise EncodeError(
                f"marker size {style.size:g} exceeds the page size "
                f"({page_width:g} x {page_height:g})"
            )

    def _composited_pages(
        self,
        document: PdfRasterDocument,
        page_index: int,
        rect: Rect,
        marker_image: Image.Image,
        scale: float,
    ) -> Iterator[PixelBuffer]:
        for index in range(document.page_count):
            if index == page_index:
                yield self.compositor.composite(document, index, rect, marker_image, scale)
            else:
                yield document.render(index, scale)

    def replace(
        self,
        source: SourceDocument,
        marker: MarkerRecord,
        payload: str,
        style: StyleSpec,
    ) -> ReplacementOutput:
        """Swap `marker` for a new one encoding `payload` and return the re-encoded file."""
        payload = self._checked_payload(payload)
        rect = target_rect(marker, style)

        with self.rasterizer.open(source) as document:
            page_index = self._page_index(marker, document)
            self._check_marker_fits(style, document, page_index)
            if isinstance(document, PdfRasterDocument):
                scale = self.settings.pdf_output_scale
                marker_image = self.synthesizer.synthesize(payload, style, scale)
                data = self.encoder.encode_pdf(
                    self._composited_pages(document, page_index, rect, marker_image, scale)
                )
                output = ReplacementOutput(data, "application/pdf", output_filename(source, "pdf"))
            else:
                marker_image = self.synthesizer.synthesize(payload, style, 1.0)
                buffer = self.compositor.composite(document, page_index, rect, marker_image, 1.0)
                data, fmt, mimetype = self.encoder.encode_image(buffer, document.image, rect)
                extension = (
                    source.extension
                    if IMAGE_EXTENSIONS.get(source.extension) == fmt
                    else extension_for_format(fmt)
                )
                output = ReplacementOutput(data, mimetype, output_filename(source, extension))

        self.logger.info(
            "marker replaced",
            extra={
                "source": source.filename,
                "marker": marker.id,
                "page": marker.page_number,
                "size": style.size,
                "bytes": len(output.data),
            },
        )
        return output

    def preview(
        self,
        source: SourceDocument,
        marker: MarkerRecord,
        payload: str,
        style: StyleSpec,
        display_width: Optional[float] = None,
    ) -> PreviewResult:
        """Render only the marker's page with the new marker drawn in, as PNG."""
        payload = self._checked_payload(payload)
        rect = target_rect(marker, style)
        scale = self.settings.preview_scale

        with self.rasterizer.open(source) as document:
            page_index = self._page_index(marker, document)
            self._check_marker_fits(style, document, page_index)
            marker_image = self.synthesizer.synthesize(payload, style, scale)
            buffer = self.compositor.composite(document, page_index, rect, marker_image, scale)

        highlight = to_pixels_at_scale(rect, scale)
        if display_width:
            highlight = to_display(highlight, display_width, buffer.width)

        handle = io.BytesIO()
        Image.fromarray(buffer.pixels).save(handle, format="PNG")
        return PreviewResult(handle.getvalue(), marker.page_number, scale, highlight)

    async def run(
        self,
        source: SourceDocument,
        marker: MarkerRecord,
        payload: str,
        style: StyleSpec,
    ) -> ReplacementOutput:
        return await asyncio.to_thread(self.replace, source, marker, payload, style)
