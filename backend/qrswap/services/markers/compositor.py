from __future__ import annotations

from typing import Tuple

import numpy as np
from PIL import Image

from ...utils.exceptions import RenderError
from ...utils.logging import get_logger
from .geometry import to_pixels_at_scale
from .models import PixelBuffer, Rect
from .rasterizer import ImageRasterDocument, PdfRasterDocument


def _pixel_box(rect: Rect) -> Tuple[int, int, int, int]:
    x0 = int(round(rect.x))
    y0 = int(round(rect.y))
    x1 = int(round(rect.right))
    y1 = int(round(rect.bottom))
    return x0, y0, x1, y1


class Compositor:
    """Draw a synthesized marker onto a freshly rendered page.

    The old marker is not erased: the new marker's opaque background is
    expected to cover it, which holds when the target rect is at least as
    large as the original marker's box.
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)

    def paste(self, buffer: PixelBuffer, target_rect_native: Rect, marker_image: Image.Image) -> Rect:
        """Paste into `buffer` in place; returns the pixel rect actually written."""
        x0, y0, x1, y1 = _pixel_box(to_pixels_at_scale(target_rect_native, buffer.scale))
        width, height = x1 - x0, y1 - y0
        if width <= 0 or height <= 0:
            raise RenderError(f"target rect {target_rect_native} is empty at scale {buffer.scale}")

        marker = marker_image.convert("RGB")
        if marker.size != (width, height):
            marker = marker.resize((width, height), Image.Resampling.NEAREST)
        tile = np.asarray(marker, dtype=np.uint8)

        # Clip to the page; off-page parts of the marker are dropped.
        cx0, cy0 = max(x0, 0), max(y0, 0)
        cx1, cy1 = min(x1, buffer.width), min(y1, buffer.height)
        if cx1 <= cx0 or cy1 <= cy0:
            raise RenderError(f"target rect {target_rect_native} lies outside the page")

        buffer.pixels[cy0:cy1, cx0:cx1] = tile[cy0 - y0 : cy1 - y0, cx0 - x0 : cx1 - x0]
        if (cx0, cy0, cx1, cy1) != (x0, y0, x1, y1):
            self.logger.warning(
                "marker clipped to page bounds",
                extra={"requested": [x0, y0, x1, y1], "written": [cx0, cy0, cx1, cy1]},
            )
        return Rect(cx0, cy0, cx1 - cx0, cy1 - cy0)

    def composite(
        self,
        document: PdfRasterDocument | ImageRasterDocument,
        page_index: int,
        target_rect_native: Rect,
        marker_image: Image.Image,
        scale: float,
    ) -> PixelBuffer:
        buffer = document.render(page_index, scale)
        self.paste(buffer, target_rect_native, marker_image)
        return buffer
