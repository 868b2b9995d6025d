from __future__ import annotations

import base64
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ...utils.exceptions import SettingsFormatError

RGB = Tuple[int, int, int]

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")


class SourceKind(str, Enum):
    PDF = "pdf"
    IMAGE = "image"


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    def contains(self, other: "Rect", tolerance: float = 0.0) -> bool:
        return (
            other.x >= self.x - tolerance
            and other.y >= self.y - tolerance
            and other.right <= self.right + tolerance
            and other.bottom <= self.bottom + tolerance
        )

    def intersects(self, other: "Rect") -> bool:
        return not (
            other.x >= self.right
            or other.right <= self.x
            or other.y >= self.bottom
            or other.bottom <= self.y
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rect":
        return cls(
            float(data["x"]),
            float(data["y"]),
            float(data["width"]),
            float(data["height"]),
        )


@dataclass
class PixelBuffer:
    """RGB raster of one page at a given scale; `pixels` is H x W x 3 uint8."""

    pixels: np.ndarray
    scale: float
    native_width: float
    native_height: float

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.pixels.copy(), self.scale, self.native_width, self.native_height)


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    data: bytes
    mimetype: Optional[str] = None


@dataclass(frozen=True)
class SourceDocument:
    filename: str
    data: bytes
    kind: SourceKind
    mimetype: str
    image_format: Optional[str] = None

    @property
    def stem(self) -> str:
        name = self.filename.rsplit("/", 1)[-1]
        return name.rsplit(".", 1)[0] if "." in name else name

    @property
    def extension(self) -> str:
        name = self.filename.rsplit("/", 1)[-1]
        return name.rsplit(".", 1)[-1].lower() if "." in name else ""


@dataclass(frozen=True)
class MarkerRecord:
    id: str
    payload: str
    preview_png: bytes
    location: Rect
    page_number: int
    page_width: float
    page_height: float

    def __post_init__(self) -> None:
        if self.location.width <= 0 or self.location.height <= 0:
            raise ValueError("marker location must have positive width and height")

    @property
    def preview_data_url(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.preview_png).decode("ascii")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "data": self.payload,
            "imageDataUrl": self.preview_data_url,
            "location": self.location.to_dict(),
            "pageNumber": self.page_number,
            "pageWidth": self.page_width,
            "pageHeight": self.page_height,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarkerRecord":
        """Rebuild a record sent back by a client; the preview image is not required."""
        preview = b""
        data_url = data.get("imageDataUrl") or ""
        if data_url.startswith("data:") and "," in data_url:
            preview = base64.b64decode(data_url.split(",", 1)[1])
        return cls(
            id=str(data.get("id", "")),
            payload=str(data.get("data", "")),
            preview_png=preview,
            location=Rect.from_dict(data["location"]),
            page_number=int(data["pageNumber"]),
            page_width=float(data["pageWidth"]),
            page_height=float(data["pageHeight"]),
        )


def parse_hex_color(value: Any, field_name: str) -> RGB:
    if not isinstance(value, str):
        raise SettingsFormatError(f"{field_name} must be a hex color string")
    match = _HEX_COLOR.match(value.strip())
    if not match:
        raise SettingsFormatError(f"{field_name} must look like #RRGGBB, got {value!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


def format_hex_color(rgb: RGB) -> str:
    return "#{:02X}{:02X}{:02X}".format(*rgb)


@dataclass(frozen=True)
class StyleSpec:
    color: RGB = (0, 0, 0)
    background_color: RGB = (255, 255, 255)
    size: float = 100.0

    def __post_init__(self) -> None:
        if not (self.size > 0 and math.isfinite(self.size)):
            raise ValueError(f"style size must be a positive finite number, got {self.size!r}")

    @classmethod
    def from_settings(cls, record: Any) -> "StyleSpec":
        if not isinstance(record, dict):
            raise SettingsFormatError("settings must be a JSON object")
        missing = [key for key in ("color", "backgroundColor", "size") if key not in record]
        if missing:
            raise SettingsFormatError(f"settings missing required fields: {', '.join(missing)}")

        size = record["size"]
        if isinstance(size, bool) or not isinstance(size, (int, float)):
            raise SettingsFormatError("size must be a number")
        if not (size > 0 and math.isfinite(size)):
            raise SettingsFormatError("size must be a positive finite number")

        return cls(
            color=parse_hex_color(record["color"], "color"),
            background_color=parse_hex_color(record["backgroundColor"], "backgroundColor"),
            size=float(size),
        )

    @classmethod
    def for_marker(cls, marker: MarkerRecord, base: Optional["StyleSpec"] = None) -> "StyleSpec":
        base = base or cls()
        return cls(base.color, base.background_color, float(max(round(marker.location.width), 1)))

    def to_settings(self) -> Dict[str, Any]:
        size: float | int = int(self.size) if float(self.size).is_integer() else self.size
        return {
            "color": format_hex_color(self.color),
            "backgroundColor": format_hex_color(self.background_color),
            "size": size,
        }


@dataclass(frozen=True)
class PageScanIssue:
    page_number: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"pageNumber": self.page_number, "message": self.message}


@dataclass
class FileExtraction:
    source_id: str
    filename: str
    kind: SourceKind
    page_count: int
    markers: List[MarkerRecord] = field(default_factory=list)
    issues: List[PageScanIssue] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.source_id,
            "filename": self.filename,
            "kind": self.kind.value,
            "pageCount": self.page_count,
            "qrCodes": [marker.to_dict() for marker in self.markers],
            "partial": self.partial,
            "issues": [issue.to_dict() for issue in self.issues],
        }


@dataclass
class FileOutcome:
    filename: str
    extraction: Optional[FileExtraction] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.extraction is not None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"filename": self.filename, "ok": self.ok}
        if self.extraction is not None:
            payload["result"] = self.extraction.to_dict()
        else:
            payload["error"] = self.error
            payload["errorType"] = self.error_type
        return payload


@dataclass
class BatchSummary:
    outcomes: List[FileOutcome] = field(default_factory=list)

    @property
    def successes(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failures(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def total_markers(self) -> int:
        return sum(len(outcome.extraction.markers) for outcome in self.successes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [outcome.to_dict() for outcome in self.outcomes],
            "succeeded": len(self.successes),
            "failed": len(self.failures),
            "totalMarkers": self.total_markers,
        }


@dataclass(frozen=True)
class ReplacementOutput:
    data: bytes
    mimetype: str
    filename: str


@dataclass(frozen=True)
class PreviewResult:
    png: bytes
    page_number: int
    scale: float
    highlight: Optional[Rect] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imageDataUrl": "data:image/png;base64," + base64.b64encode(self.png).decode("ascii"),
            "pageNumber": self.page_number,
            "scale": self.scale,
            "highlight": self.highlight.to_dict() if self.highlight else None,
        }
