from __future__ import annotations

import io
from typing import Iterable, List, Sequence, Tuple

import fitz
import numpy as np
import pytest
import qrcode
from PIL import Image

from qrswap import create_app
from qrswap.services.markers.detector import DetectionResult, MarkerDetector


def qr_png(payload: str, pixels: int = 300, border: int = 1) -> bytes:
    """PNG of a black-on-white QR code, upscaled without smoothing.

    `border` is the quiet zone in modules; with 0 the image is the bare symbol.
    """
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_H, border=border)
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    image = image.resize((pixels, pixels), Image.Resampling.NEAREST)
    handle = io.BytesIO()
    image.save(handle, format="PNG")
    return handle.getvalue()


def build_pdf(
    pages: Sequence[Tuple[Tuple[float, float], Iterable[Tuple[str, Tuple[float, float, float, float]]]]],
) -> bytes:
    """Build a PDF; each page is ((width, height), [(payload, (x, y, w, h)), ...]).

    The symbol itself fills (x, y, w, h); the white page around it is the quiet zone.
    """
    doc = fitz.open()
    try:
        for (width, height), markers in pages:
            page = doc.new_page(width=width, height=height)
            page.insert_text(fitz.Point(72, height - 72), "Scan for details")
            for payload, (x, y, w, h) in markers:
                page.insert_image(fitz.Rect(x, y, x + w, y + h), stream=qr_png(payload, border=0))
        return doc.tobytes()
    finally:
        doc.close()


def build_image(
    size: Tuple[int, int],
    markers: Iterable[Tuple[str, Tuple[int, int, int]]],
    fmt: str = "PNG",
    mode: str = "RGB",
) -> bytes:
    """Raster image with QR codes pasted at (x, y) with the given side length."""
    canvas = Image.new("RGB", size, (255, 255, 255))
    for payload, (x, y, side) in markers:
        marker = Image.open(io.BytesIO(qr_png(payload, side))).convert("RGB")
        canvas.paste(marker, (x, y))
    if mode != "RGB":
        canvas = canvas.convert(mode)
    handle = io.BytesIO()
    canvas.save(handle, format=fmt)
    return handle.getvalue()


class ScriptedDetector(MarkerDetector):
    """Detector stand-in that replays a fixed sequence of results."""

    def __init__(self, results: Sequence[DetectionResult]) -> None:
        self.results = list(results)
        self.calls: List[np.ndarray] = []

    def detect(self, pixels: np.ndarray) -> DetectionResult:
        self.calls.append(pixels.copy())
        if len(self.calls) > len(self.results):
            return DetectionResult.not_found()
        return self.results[len(self.calls) - 1]


class DarkBlobDetector(MarkerDetector):
    """Reports the first remaining dark square block; payload comes from its position."""

    def __init__(self, block: int) -> None:
        self.block = block

    def detect(self, pixels: np.ndarray) -> DetectionResult:
        dark = np.argwhere(pixels[:, :, 0] < 128)
        if dark.size == 0:
            return DetectionResult.not_found()
        y, x = (int(v) for v in dark[0])
        corners = [(x, y), (x + self.block, y), (x + self.block, y + self.block), (x, y + self.block)]
        return DetectionResult.found(f"blob-{x}-{y}", corners)


@pytest.fixture
def app():
    app = create_app("testing")
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def single_marker_pdf() -> bytes:
    return build_pdf([((600, 800), [("https://example.com", (50, 50, 100, 100))])])


@pytest.fixture
def three_marker_pdf() -> bytes:
    return build_pdf(
        [
            (
                (600, 800),
                [
                    ("https://one.example", (50, 50, 120, 120)),
                    ("https://two.example", (380, 60, 120, 120)),
                    ("https://three.example", (60, 480, 120, 120)),
                ],
            )
        ]
    )
