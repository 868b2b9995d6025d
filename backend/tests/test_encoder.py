from __future__ import annotations

import io

import fitz
import numpy as np
import pytest
from PIL import Image

from conftest import build_image
from qrswap.services.markers.encoder import OutputEncoder, oriented_size, page_orientation
from qrswap.services.markers.models import PixelBuffer, Rect
from qrswap.utils.exceptions import EncodeError


def _buffer(native_w, native_h, scale=2.0, value=200) -> PixelBuffer:
    pixels = np.full((int(native_h * scale), int(native_w * scale), 3), value, dtype=np.uint8)
    return PixelBuffer(pixels, scale, native_w, native_h)


def test_orientation_from_dimensions():
    assert page_orientation(600, 800) == "portrait"
    assert page_orientation(800, 600) == "landscape"
    assert oriented_size(800, 600) == (800, 600)
    assert oriented_size(600, 600) == (600, 600)


def test_pdf_keeps_page_count_and_native_sizes():
    pages = [_buffer(600, 800), _buffer(842, 595), _buffer(300, 300)]

    data = OutputEncoder().encode_pdf(pages)

    doc = fitz.open(stream=data, filetype="pdf")
    try:
        assert doc.page_count == 3
        sizes = [(round(page.rect.width), round(page.rect.height)) for page in doc]
        assert sizes == [(600, 800), (842, 595), (300, 300)]
        assert all(page.get_images() for page in doc)
    finally:
        doc.close()


def test_pdf_without_pages_is_an_error():
    with pytest.raises(EncodeError):
        OutputEncoder().encode_pdf([])


def test_jpeg_reencode_keeps_quantization_tables():
    original_bytes = build_image((80, 60), [], fmt="JPEG")
    original = Image.open(io.BytesIO(original_bytes))
    buffer = PixelBuffer(np.asarray(original.convert("RGB")).copy(), 1.0, 80, 60)

    data, fmt, mimetype = OutputEncoder().encode_image(buffer, original)

    reopened = Image.open(io.BytesIO(data))
    assert (fmt, mimetype) == ("JPEG", "image/jpeg")
    assert reopened.size == (80, 60)
    assert reopened.quantization == original.quantization


def test_alpha_restored_with_opaque_marker_area():
    original = Image.new("RGBA", (40, 40), (255, 255, 255, 0))
    handle = io.BytesIO()
    original.save(handle, format="PNG")
    original = Image.open(io.BytesIO(handle.getvalue()))
    buffer = PixelBuffer(np.full((40, 40, 3), 255, dtype=np.uint8), 1.0, 40, 40)

    data, fmt, _ = OutputEncoder().encode_image(buffer, original, Rect(10, 10, 20, 20))

    alpha = np.asarray(Image.open(io.BytesIO(data)).getchannel("A"))
    assert fmt == "PNG"
    assert (alpha[10:30, 10:30] == 255).all()
    assert (alpha[:10] == 0).all()


def test_greyscale_source_stays_greyscale():
    original = Image.open(io.BytesIO(build_image((30, 30), [], mode="L")))
    buffer = PixelBuffer(np.full((30, 30, 3), 255, dtype=np.uint8), 1.0, 30, 30)

    data, _, _ = OutputEncoder().encode_image(buffer, original)

    assert Image.open(io.BytesIO(data)).mode == "L"
