from __future__ import annotations

import asyncio
import io
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from ...utils.exceptions import DetectionError, MarkerPipelineError
from ...utils.logging import get_logger
from ..markers.detector import MarkerDetector, ZXingDetector
from ..markers.geometry import to_native
from ..markers.models import (
    BatchSummary,
    FileExtraction,
    FileOutcome,
    MarkerRecord,
    PageScanIssue,
    PixelBuffer,
    SourceDocument,
    SourceKind,
    UploadedFile,
)
from ..markers.rasterizer import Rasterizer, RasterizerOptions
from ..markers.scanner import MarkerScanner, ScanHit
from ..markers.source_loader import load_source, source_identity
from .pipeline_settings import PipelineSettings

DetectorFactory = Callable[[], MarkerDetector]


def _png_bytes(crop: np.ndarray) -> bytes:
    handle = io.BytesIO()
    Image.fromarray(crop).save(handle, format="PNG")
    return handle.getvalue()


class MarkerExtractionService:
    """Find every marker in a PDF or image and describe it in native page units."""

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        *,
        rasterizer: Optional[Rasterizer] = None,
        detector_factory: Optional[DetectorFactory] = None,
    ) -> None:
        self.logger = get_logger(__name__)
        self.settings = settings or PipelineSettings()
        self.rasterizer = rasterizer or Rasterizer(
            RasterizerOptions(anti_aliasing=self.settings.raster_anti_aliasing)
        )
        self.detector_factory = detector_factory or self._default_detector

    def _default_detector(self) -> MarkerDetector:
        return ZXingDetector(
            multi_result=self.settings.detector_multi_result,
            try_harder=self.settings.detector_try_harder,
        )

    def detection_scale(self, source: SourceDocument) -> float:
        if source.kind is SourceKind.PDF:
            return self.settings.pdf_detection_scale
        return self.settings.image_detection_scale

    def _new_scanner(self) -> MarkerScanner:
        # One detector per file; detectors may carry decoder state.
        return MarkerScanner(
            self.detector_factory(),
            padding=self.settings.suppression_padding,
            max_iterations=self.settings.scan_max_iterations,
            strategy=self.settings.scan_strategy,
        )

    def _record_for(self, hit: ScanHit, buffer: PixelBuffer, page_number: int) -> MarkerRecord:
        location = to_native(hit.pixel_rect, buffer.scale)
        return MarkerRecord(
            id=f"{page_number}-{round(hit.pixel_rect.x)}-{round(hit.pixel_rect.y)}",
            payload=hit.payload,
            preview_png=_png_bytes(hit.crop),
            location=location,
            page_number=page_number,
            page_width=buffer.native_width,
            page_height=buffer.native_height,
        )

    def scan_page(
        self,
        scanner: MarkerScanner,
        buffer: PixelBuffer,
        page_number: int,
    ) -> Tuple[List[MarkerRecord], Optional[PageScanIssue]]:
        """Scan one rendered page; markers read before a detector failure are kept."""
        markers: List[MarkerRecord] = []
        try:
            for hit in scanner.scan(buffer):
                markers.append(self._record_for(hit, buffer, page_number))
        except DetectionError as exc:
            self.logger.warning(
                "page scan stopped early",
                extra={"page": page_number, "markers": len(markers), "error": exc.message},
            )
            return markers, PageScanIssue(page_number, exc.message)
        return markers, None

    async def extract_async(self, source: SourceDocument) -> FileExtraction:
        scale = self.detection_scale(source)
        scanner = self._new_scanner()
        document = await asyncio.to_thread(self.rasterizer.open, source)
        try:
            extraction = FileExtraction(
                source_id=source_identity(source),
                filename=source.filename,
                kind=source.kind,
                page_count=document.page_count,
            )
            for page_index in range(document.page_count):
                buffer = await asyncio.to_thread(document.render, page_index, scale)
                markers, issue = await asyncio.to_thread(
                    self.scan_page, scanner, buffer, page_index + 1
                )
                extraction.markers.extend(markers)
                if issue is not None:
                    extraction.issues.append(issue)
        finally:
            document.close()

        self.logger.info(
            "markers extracted",
            extra={
                "source": source.filename,
                "pages": extraction.page_count,
                "markers": len(extraction.markers),
                "partial": extraction.partial,
            },
        )
        return extraction

    def extract(self, source: SourceDocument) -> FileExtraction:
        return asyncio.run(self.extract_async(source))

    async def _extract_upload(self, upload: UploadedFile) -> FileOutcome:
        try:
            source = load_source(upload.filename, upload.data, upload.mimetype)
            task = self.extract_async(source)
            timeout = self.settings.file_task_timeout_seconds
            if timeout and timeout > 0:
                extraction = await asyncio.wait_for(task, timeout)
            else:
                extraction = await task
        except MarkerPipelineError as exc:
            self.logger.warning(
                "file extraction failed",
                extra={"source": upload.filename, "error": exc.message},
            )
            return FileOutcome(upload.filename, error=exc.message, error_type=type(exc).__name__)
        except asyncio.TimeoutError:
            message = f"{upload.filename}: extraction timed out after {self.settings.file_task_timeout_seconds}s"
            self.logger.warning("file extraction timed out", extra={"source": upload.filename})
            return FileOutcome(upload.filename, error=message, error_type="TimeoutError")
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("unexpected extraction failure", extra={"source": upload.filename})
            return FileOutcome(upload.filename, error=str(exc), error_type=type(exc).__name__)
        return FileOutcome(upload.filename, extraction=extraction)

    async def extract_batch(self, uploads: Sequence[UploadedFile]) -> BatchSummary:
        """Extract from every upload concurrently; one file failing never affects the rest."""
        results = await asyncio.gather(
            *(self._extract_upload(upload) for upload in uploads),
            return_exceptions=True,
        )
        outcomes: List[FileOutcome] = []
        for upload, result in zip(uploads, results):
            if isinstance(result, BaseException):
                outcomes.append(
                    FileOutcome(upload.filename, error=str(result) or type(result).__name__, error_type=type(result).__name__)
                )
            else:
                outcomes.append(result)
        summary = BatchSummary(outcomes)
        self.logger.info(
            "batch extraction finished",
            extra={
                "files": len(summary.outcomes),
                "failed": len(summary.failures),
                "markers": summary.total_markers,
            },
        )
        return summary

    async def run(self, uploads: Iterable[UploadedFile]) -> BatchSummary:
        return await self.extract_batch(list(uploads))
