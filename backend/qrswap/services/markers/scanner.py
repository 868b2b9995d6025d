"""Multi-marker scanning on top of a single-result detector.

The detector only ever reports one marker per call, so each marker that is
read gets painted over (suppressed) before the detector runs again. The
loop stops when the detector reports that nothing is left.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from ...utils.exceptions import DetectionError
from ...utils.logging import get_logger
from .detector import DetectionResult, DetectionStatus, MarkerDetector
from .geometry import bounding_rect, clamp_to_bounds, pad_rect, to_pixel_slices
from .models import PixelBuffer, Rect

SUPPRESSION_FILL = 255

STRATEGY_AUTO = "auto"
STRATEGY_SUPPRESS = "suppress"


@dataclass(frozen=True)
class ScanHit:
    payload: str
    pixel_rect: Rect
    crop: np.ndarray


class MarkerScanner:
    def __init__(
        self,
        detector: MarkerDetector,
        *,
        padding: int = 10,
        max_iterations: int = 256,
        strategy: str = STRATEGY_AUTO,
    ) -> None:
        if padding < 0:
            raise ValueError("padding must not be negative")
        if strategy not in (STRATEGY_AUTO, STRATEGY_SUPPRESS):
            raise ValueError(f"unknown scan strategy {strategy!r}")
        self.detector = detector
        self.padding = padding
        self.max_iterations = max_iterations
        self.strategy = strategy
        self.logger = get_logger(__name__)

    @property
    def uses_suppression(self) -> bool:
        return not (self.strategy == STRATEGY_AUTO and self.detector.supports_multiple)

    def scan(self, buffer: PixelBuffer) -> Iterator[ScanHit]:
        """Yield markers found in `buffer`, painting each one out as it is read.

        Raises DetectionError after the hits read so far when the detector
        fails for any reason other than "nothing found".
        """
        if self.uses_suppression:
            return self._scan_with_suppression(buffer)
        return self._scan_native_multi(buffer)

    def _hit_from(self, result: DetectionResult, pixels: np.ndarray) -> ScanHit:
        height, width = pixels.shape[:2]
        box = clamp_to_bounds(bounding_rect(result.corners), width, height)
        if box.width <= 0 or box.height <= 0:
            raise DetectionError(f"detector returned a degenerate marker box {box}")
        rows, cols = to_pixel_slices(box, width, height)
        return ScanHit(payload=result.payload or "", pixel_rect=box, crop=pixels[rows, cols].copy())

    def suppress(self, pixels: np.ndarray, box: Rect) -> None:
        height, width = pixels.shape[:2]
        rows, cols = to_pixel_slices(pad_rect(box, self.padding), width, height)
        pixels[rows, cols] = SUPPRESSION_FILL

    def _scan_with_suppression(self, buffer: PixelBuffer) -> Iterator[ScanHit]:
        pixels = buffer.pixels
        for iteration in range(self.max_iterations):
            result = self.detector.detect(pixels)
            if result.status is DetectionStatus.NOT_FOUND:
                self.logger.debug("scan finished", extra={"markers": iteration})
                return
            if result.status is DetectionStatus.ERROR:
                raise DetectionError(result.message or "detector failed")

            hit = self._hit_from(result, pixels)
            self.suppress(pixels, hit.pixel_rect)
            yield hit

        raise DetectionError(
            f"scan stopped after {self.max_iterations} markers without a not-found signal"
        )

    def _scan_native_multi(self, buffer: PixelBuffer) -> Iterator[ScanHit]:
        for result in self.detector.detect_all(buffer.pixels):
            if result.status is DetectionStatus.NOT_FOUND:
                continue
            if result.status is DetectionStatus.ERROR:
                raise DetectionError(result.message or "detector failed")
            yield self._hit_from(result, buffer.pixels)
