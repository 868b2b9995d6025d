from __future__ import annotations

from .compositor import Compositor
from .detector import DetectionResult, DetectionStatus, MarkerDetector, ZXingDetector
from .encoder import OutputEncoder, PdfAssembler
from .models import (
    BatchSummary,
    FileExtraction,
    FileOutcome,
    MarkerRecord,
    PageScanIssue,
    PixelBuffer,
    PreviewResult,
    Rect,
    ReplacementOutput,
    SourceDocument,
    SourceKind,
    StyleSpec,
    UploadedFile,
)
from .rasterizer import Rasterizer, RasterizerOptions
from .scanner import MarkerScanner, ScanHit
from .source_loader import load_source
from .synthesizer import MarkerSynthesizer

__all__ = [
    "BatchSummary",
    "Compositor",
    "DetectionResult",
    "DetectionStatus",
    "FileExtraction",
    "FileOutcome",
    "MarkerDetector",
    "MarkerRecord",
    "MarkerScanner",
    "MarkerSynthesizer",
    "OutputEncoder",
    "PageScanIssue",
    "PdfAssembler",
    "PixelBuffer",
    "PreviewResult",
    "Rasterizer",
    "RasterizerOptions",
    "Rect",
    "ReplacementOutput",
    "ScanHit",
    "SourceDocument",
    "SourceKind",
    "StyleSpec",
    "UploadedFile",
    "ZXingDetector",
    "load_source",
]
