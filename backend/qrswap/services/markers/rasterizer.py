from __future__ import annotations

import io
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

import fitz
import numpy as np
from PIL import Image

from ...utils.exceptions import RenderError
from ...utils.logging import get_logger
from .models import PixelBuffer, SourceDocument, SourceKind

# MuPDF keeps one global context per process; document work must not interleave across threads.
MUPDF_LOCK = threading.RLock()


@dataclass(frozen=True)
class RasterizerOptions:
    """Process-wide rasterization setup, applied once when a rasterizer is built."""

    anti_aliasing: Optional[int] = None
    display_mupdf_errors: bool = False


def open_image(source: SourceDocument) -> Image.Image:
    """Decode the first frame of an image source, keeping its format metadata."""
    try:
        image = Image.open(io.BytesIO(source.data))
        image.load()
    except Exception as exc:  # noqa: BLE001
        raise RenderError(f"{source.filename}: could not decode image ({exc})") from exc
    if getattr(image, "n_frames", 1) > 1:
        image.seek(0)
    return image


def flatten_to_rgb(image: Image.Image) -> Image.Image:
    """Drop alpha over a white background; markers are read dark-on-light."""
    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if has_alpha:
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(background, rgba).convert("RGB")
    return image.convert("RGB")


def _check_scale(scale: float) -> None:
    if not scale > 0:
        raise RenderError(f"render scale must be positive, got {scale!r}")


class PdfRasterDocument:
    def __init__(self, source: SourceDocument) -> None:
        self.source = source
        with MUPDF_LOCK:
            try:
                self._doc = fitz.open(stream=source.data, filetype="pdf")
            except Exception as exc:  # noqa: BLE001
                raise RenderError(f"{source.filename}: could not open PDF ({exc})") from exc
            if self._doc.needs_pass:
                self._doc.close()
                raise RenderError(f"{source.filename}: PDF is password protected")
            try:
                self._page_count = self._doc.page_count
            except Exception as exc:  # noqa: BLE001
                self._doc.close()
                raise RenderError(f"{source.filename}: could not read PDF pages ({exc})") from exc

    def __enter__(self) -> "PdfRasterDocument":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        with MUPDF_LOCK:
            if not self._doc.is_closed:
                self._doc.close()

    @property
    def page_count(self) -> int:
        return self._page_count

    def _load_page(self, page_index: int) -> fitz.Page:
        # Callers hold MUPDF_LOCK.
        if not 0 <= page_index < self._page_count:
            raise RenderError(
                f"{self.source.filename}: page index {page_index} out of range "
                f"(document has {self._page_count} pages)"
            )
        return self._doc.load_page(page_index)

    def page_size(self, page_index: int) -> Tuple[float, float]:
        with MUPDF_LOCK:
            page = self._load_page(page_index)
            size = float(page.rect.width), float(page.rect.height)
            del page
        return size

    def render(self, page_index: int, scale: float) -> PixelBuffer:
        _check_scale(scale)
        with MUPDF_LOCK:
            page = self._load_page(page_index)
            native_width, native_height = float(page.rect.width), float(page.rect.height)
            try:
                pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False, colorspace=fitz.csRGB)
            except Exception as exc:  # noqa: BLE001
                raise RenderError(
                    f"{self.source.filename}: failed to render page {page_index + 1} ({exc})"
                ) from exc
            rows = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.stride)
            pixels = rows[:, : pix.width * pix.n].reshape(pix.height, pix.width, pix.n)[:, :, :3].copy()
            del rows, pix, page

        return PixelBuffer(
            pixels=pixels,
            scale=scale,
            native_width=native_width,
            native_height=native_height,
        )


class ImageRasterDocument:
    page_count = 1

    def __init__(self, source: SourceDocument) -> None:
        self.source = source
        self.image = open_image(source)
        self._rgb = flatten_to_rgb(self.image)

    def __enter__(self) -> "ImageRasterDocument":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.image.close()

    def _check_page(self, page_index: int) -> None:
        if page_index != 0:
            raise RenderError(
                f"{self.source.filename}: page index {page_index} out of range (images have one page)"
            )

    def page_size(self, page_index: int) -> Tuple[float, float]:
        self._check_page(page_index)
        return float(self._rgb.width), float(self._rgb.height)

    def render(self, page_index: int, scale: float) -> PixelBuffer:
        _check_scale(scale)
        self._check_page(page_index)
        rgb = self._rgb
        if scale != 1:
            target = (max(int(round(rgb.width * scale)), 1), max(int(round(rgb.height * scale)), 1))
            rgb = rgb.resize(target, Image.Resampling.LANCZOS)
        return PixelBuffer(
            pixels=np.array(rgb, dtype=np.uint8),
            scale=scale,
            native_width=float(self._rgb.width),
            native_height=float(self._rgb.height),
        )


class Rasterizer:
    """Render pages of PDFs (PyMuPDF) and standalone images (Pillow) to RGB buffers."""

    def __init__(self, options: RasterizerOptions | None = None) -> None:
        self.options = options or RasterizerOptions()
        self.logger = get_logger(__name__)
        if self.options.anti_aliasing is not None:
            fitz.TOOLS.set_aa_level(self.options.anti_aliasing)
        fitz.TOOLS.mupdf_display_errors(self.options.display_mupdf_errors)

    def open(self, source: SourceDocument) -> PdfRasterDocument | ImageRasterDocument:
        if source.kind is SourceKind.PDF:
            return PdfRasterDocument(source)
        return ImageRasterDocument(source)

    def page_count(self, source: SourceDocument) -> int:
        with self.open(source) as document:
            return document.page_count

    def render(self, source: SourceDocument, page_index: int, scale: float) -> PixelBuffer:
        with self.open(source) as document:
            return document.render(page_index, scale)

    def page_size(self, source: SourceDocument, page_index: int) -> Tuple[float, float]:
        with self.open(source) as document:
            return document.page_size(page_index)
