from __future__ import annotations

import io
from typing import Any, Dict, Iterable, Optional, Tuple

import fitz
from PIL import Image, JpegImagePlugin

from ...utils.exceptions import EncodeError, MarkerPipelineError
from ...utils.logging import get_logger
from .geometry import to_pixel_slices, to_pixels_at_scale
from .models import PixelBuffer, Rect
from .rasterizer import MUPDF_LOCK

PORTRAIT = "portrait"
LANDSCAPE = "landscape"


def page_orientation(width: float, height: float) -> str:
    return LANDSCAPE if width > height else PORTRAIT


def oriented_size(width: float, height: float) -> Tuple[float, float]:
    """Order page dimensions to match the orientation chosen from width vs height."""
    if page_orientation(width, height) == LANDSCAPE:
        return max(width, height), min(width, height)
    return min(width, height), max(width, height)


class PdfAssembler:
    """Builds an output PDF out of full-page raster images, one per source page."""

    def __init__(self, first_page_size: Tuple[float, float]) -> None:
        self._doc = fitz.open()
        self.add_page(first_page_size)

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def add_page(self, native_size: Tuple[float, float]) -> int:
        width, height = oriented_size(*native_size)
        self._doc.new_page(width=width, height=height)
        return self._doc.page_count - 1

    def draw_image(
        self,
        page_index: int,
        image_bytes: bytes,
        origin: Tuple[float, float],
        size: Tuple[float, float],
    ) -> None:
        page = self._doc[page_index]
        x, y = origin
        rect = fitz.Rect(x, y, x + size[0], y + size[1])
        page.insert_image(rect, stream=image_bytes, keep_proportion=False, overlay=True)

    def serialize(self) -> bytes:
        try:
            return self._doc.tobytes(garbage=3, deflate=True)
        finally:
            self._doc.close()

    def discard(self) -> None:
        if not self._doc.is_closed:
            self._doc.close()


class OutputEncoder:
    def __init__(self, jpeg_quality: int = 95) -> None:
        self.jpeg_quality = jpeg_quality
        self.logger = get_logger(__name__)

    def _page_jpeg(self, buffer: PixelBuffer) -> bytes:
        handle = io.BytesIO()
        Image.fromarray(buffer.pixels).save(handle, format="JPEG", quality=self.jpeg_quality)
        return handle.getvalue()

    def encode_pdf(self, pages: Iterable[PixelBuffer]) -> bytes:
        """Assemble composited pages into a PDF keeping each page's native size."""
        with MUPDF_LOCK:
            return self._encode_pdf_locked(pages)

    def _encode_pdf_locked(self, pages: Iterable[PixelBuffer]) -> bytes:
        assembler: Optional[PdfAssembler] = None
        try:
            for buffer in pages:
                size = (buffer.native_width, buffer.native_height)
                if assembler is None:
                    assembler = PdfAssembler(size)
                    page_index = 0
                else:
                    page_index = assembler.add_page(size)
                assembler.draw_image(page_index, self._page_jpeg(buffer), (0.0, 0.0), oriented_size(*size))
        except MarkerPipelineError:
            if assembler is not None:
                assembler.discard()
            raise
        except Exception as exc:  # noqa: BLE001
            if assembler is not None:
                assembler.discard()
            raise EncodeError(f"failed to assemble output PDF: {exc}") from exc

        if assembler is None:
            raise EncodeError("cannot assemble a PDF without pages")
        try:
            data = assembler.serialize()
        except Exception as exc:  # noqa: BLE001
            raise EncodeError(f"failed to serialize output PDF: {exc}") from exc

        self.logger.info("pdf assembled", extra={"bytes": len(data)})
        return data

    def _save_options(self, original: Image.Image, fmt: str) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        for key in ("dpi", "icc_profile"):
            if original.info.get(key) is not None:
                options[key] = original.info[key]

        if fmt == "JPEG":
            qtables = getattr(original, "quantization", None)
            if qtables:
                options["qtables"] = qtables
                sampling = JpegImagePlugin.get_sampling(original)
                if sampling >= 0:
                    options["subsampling"] = sampling
            else:
                options["quality"] = self.jpeg_quality
            if original.info.get("progressive"):
                options["progressive"] = True
        elif fmt == "WEBP":
            options["quality"] = self.jpeg_quality
        elif fmt == "TIFF":
            compression = original.info.get("compression")
            if compression and compression != "raw":
                options["compression"] = compression
        return options

    def _restore_mode(self, composed: Image.Image, original: Image.Image, fmt: str, opaque_rect: Optional[Rect]) -> Image.Image:
        has_alpha = original.mode in ("RGBA", "LA", "PA") or (
            original.mode == "P" and "transparency" in original.info
        )
        if has_alpha and fmt in ("PNG", "WEBP", "TIFF"):
            alpha = original.convert("RGBA").getchannel("A")
            if opaque_rect is not None:
                rows, cols = to_pixel_slices(opaque_rect, alpha.width, alpha.height)
                alpha.paste(255, (cols.start, rows.start, cols.stop, rows.stop))
            composed.putalpha(alpha)
            return composed

        if original.mode == "L" or (original.mode == "1" and fmt != "JPEG"):
            return composed.convert(original.mode)
        if original.mode == "P" and fmt in ("GIF", "PNG", "BMP"):
            return composed.convert("P", palette=Image.Palette.ADAPTIVE)
        return composed

    def encode_image(
        self,
        buffer: PixelBuffer,
        original: Image.Image,
        marker_rect_native: Optional[Rect] = None,
    ) -> Tuple[bytes, str, str]:
        """Encode a composited image in the source's own format.

        Returns (data, format, mimetype).
        """
        fmt = (original.format or "PNG").upper()
        if fmt == "MPO":
            fmt = "JPEG"
        Image.init()
        if fmt not in Image.SAVE:
            self.logger.warning("source format is read-only, writing PNG", extra={"format": fmt})
            fmt = "PNG"

        opaque_rect = to_pixels_at_scale(marker_rect_native, buffer.scale) if marker_rect_native else None
        composed = Image.fromarray(buffer.pixels)
        try:
            composed = self._restore_mode(composed, original, fmt, opaque_rect)
            handle = io.BytesIO()
            composed.save(handle, format=fmt, **self._save_options(original, fmt))
        except Exception as exc:  # noqa: BLE001
            raise EncodeError(f"failed to encode {fmt} output: {exc}") from exc

        data = handle.getvalue()
        mimetype = Image.MIME.get(fmt, "application/octet-stream")
        self.logger.info("image encoded", extra={"format": fmt, "bytes": len(data)})
        return data, fmt, mimetype
