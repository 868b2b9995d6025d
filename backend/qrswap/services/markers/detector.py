from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
import zxingcpp

Corner = Tuple[float, float]


class DetectionStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one detector call: found, not found, or failed."""

    status: DetectionStatus
    payload: Optional[str] = None
    corners: Tuple[Corner, ...] = field(default_factory=tuple)
    message: Optional[str] = None

    @classmethod
    def found(cls, payload: str, corners: Sequence[Corner]) -> "DetectionResult":
        return cls(DetectionStatus.FOUND, payload=payload, corners=tuple((float(x), float(y)) for x, y in corners))

    @classmethod
    def not_found(cls) -> "DetectionResult":
        return cls(DetectionStatus.NOT_FOUND)

    @classmethod
    def error(cls, message: str) -> "DetectionResult":
        return cls(DetectionStatus.ERROR, message=message)


class MarkerDetector(ABC):
    """Single-result marker detector.

    Detectors that can report every marker in one pass set
    `supports_multiple` and implement `detect_all`.
    """

    supports_multiple = False

    @abstractmethod
    def detect(self, pixels: np.ndarray) -> DetectionResult:
        raise NotImplementedError

    def detect_all(self, pixels: np.ndarray) -> List[DetectionResult]:
        raise NotImplementedError(f"{type(self).__name__} only returns one marker per call")


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    if pixels.ndim == 2:
        return np.ascontiguousarray(pixels, dtype=np.uint8)
    rgb = pixels[:, :, :3].astype(np.float32)
    gray = rgb[:, :, 0] * 0.299 + rgb[:, :, 1] * 0.587 + rgb[:, :, 2] * 0.114
    return np.ascontiguousarray(np.clip(gray + 0.5, 0, 255).astype(np.uint8))


def _corners(barcode) -> List[Corner]:
    position = barcode.position
    return [
        (position.top_left.x, position.top_left.y),
        (position.top_right.x, position.top_right.y),
        (position.bottom_right.x, position.bottom_right.y),
        (position.bottom_left.x, position.bottom_left.y),
    ]


class ZXingDetector(MarkerDetector):
    """QR detector backed by zxing-cpp."""

    def __init__(self, *, multi_result: bool = False, try_harder: bool = True) -> None:
        self.supports_multiple = multi_result
        self.try_harder = try_harder

    def _options(self) -> dict:
        return {
            "formats": zxingcpp.BarcodeFormat.QRCode,
            "try_rotate": self.try_harder,
            "try_downscale": self.try_harder,
        }

    def _to_result(self, barcode) -> DetectionResult:
        if not getattr(barcode, "valid", True):
            return DetectionResult.error("marker located but its payload could not be decoded")
        return DetectionResult.found(barcode.text, _corners(barcode))

    def detect(self, pixels: np.ndarray) -> DetectionResult:
        try:
            barcode = zxingcpp.read_barcode(to_grayscale(pixels), **self._options())
        except Exception as exc:  # noqa: BLE001
            return DetectionResult.error(f"zxing failure: {exc}")
        if barcode is None:
            return DetectionResult.not_found()
        return self._to_result(barcode)

    def detect_all(self, pixels: np.ndarray) -> List[DetectionResult]:
        try:
            barcodes = zxingcpp.read_barcodes(to_grayscale(pixels), **self._options())
        except Exception as exc:  # noqa: BLE001
            return [DetectionResult.error(f"zxing failure: {exc}")]
        return [self._to_result(barcode) for barcode in barcodes]
