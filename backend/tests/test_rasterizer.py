from __future__ import annotations

import io
from concurrent.futures import ThreadPoolExecutor

import pytest
from PIL import Image

from conftest import build_pdf
from qrswap.services.markers.rasterizer import Rasterizer, RasterizerOptions
from qrswap.services.markers.source_loader import load_source
from qrswap.utils.exceptions import RenderError


@pytest.fixture
def rasterizer():
    return Rasterizer(RasterizerOptions())


def test_pdf_pages_render_at_requested_scale(rasterizer):
    source = load_source("two.pdf", build_pdf([((600, 800), []), ((842, 595), [])]))

    buffer = rasterizer.render(source, 1, 2.0)

    assert rasterizer.page_count(source) == 2
    assert rasterizer.page_size(source, 0) == (600.0, 800.0)
    assert (buffer.width, buffer.height) == (1684, 1190)
    assert (buffer.native_width, buffer.native_height) == (842.0, 595.0)
    assert buffer.pixels.shape == (1190, 1684, 3)


def test_rendering_is_deterministic(rasterizer, single_marker_pdf):
    source = load_source("flyer.pdf", single_marker_pdf)

    first = rasterizer.render(source, 0, 2.0)
    second = rasterizer.render(source, 0, 2.0)

    assert (first.pixels == second.pixels).all()


def test_out_of_range_page_and_bad_scale(rasterizer, single_marker_pdf):
    source = load_source("flyer.pdf", single_marker_pdf)

    with pytest.raises(RenderError):
        rasterizer.render(source, 1, 2.0)
    with pytest.raises(RenderError):
        rasterizer.render(source, 0, 0)


def test_transparent_image_flattened_over_white(rasterizer):
    image = Image.new("RGBA", (20, 10), (0, 0, 0, 0))
    image.paste((0, 0, 0, 255), (0, 0, 5, 10))
    handle = io.BytesIO()
    image.save(handle, format="PNG")
    source = load_source("logo.png", handle.getvalue())

    buffer = rasterizer.render(source, 0, 1.0)

    assert buffer.pixels.shape == (10, 20, 3)
    assert (buffer.pixels[:, :5] == 0).all()
    assert (buffer.pixels[:, 5:] == 255).all()


def test_image_scaled_render_keeps_native_size(rasterizer):
    handle = io.BytesIO()
    Image.new("L", (40, 30), 128).save(handle, format="PNG")
    source = load_source("grey.png", handle.getvalue())

    buffer = rasterizer.render(source, 0, 0.5)

    assert (buffer.width, buffer.height) == (20, 15)
    assert (buffer.native_width, buffer.native_height) == (40.0, 30.0)
    assert rasterizer.page_count(source) == 1


def test_corrupt_pdf_raises_render_error(rasterizer):
    source = load_source("broken.pdf", b"%PDF-1.7\nthis is not really a pdf")

    with pytest.raises(RenderError):
        rasterizer.render(source, 0, 1.0)


def test_pdf_page_count_read_once_at_open(single_marker_pdf):
    document = Rasterizer().open(load_source("flyer.pdf", single_marker_pdf))
    document.close()

    assert document.page_count == 1


def test_concurrent_renders_match_sequential(rasterizer):
    sources = [
        load_source(f"flyer-{index}.pdf", build_pdf([((600, 800), [("https://example.com", (50, 50, 100, 100))])] * 2))
        for index in range(4)
    ]
    expected = rasterizer.render(sources[0], 1, 1.0)

    with ThreadPoolExecutor(max_workers=4) as pool:
        buffers = list(pool.map(lambda source: rasterizer.render(source, 1, 1.0), sources * 2))

    for buffer in buffers:
        assert (buffer.native_width, buffer.native_height) == (600.0, 800.0)
        assert (buffer.pixels == expected.pixels).all()
