from __future__ import annotations

import math

import pytest

from qrswap.services.markers.geometry import (
    bounding_rect,
    clamp_to_bounds,
    pad_rect,
    to_display,
    to_native,
    to_pixel_slices,
    to_pixels_at_scale,
)
from qrswap.services.markers.models import Rect


@pytest.mark.parametrize("scale", [0.5, 1.0, 1.5, 2.0, 3.7])
def test_native_round_trip_within_tolerance(scale):
    rect = Rect(50.25, 61.5, 100.0, 99.75)

    back = to_native(to_pixels_at_scale(rect, scale), scale)

    for field in ("x", "y", "width", "height"):
        assert math.isclose(getattr(back, field), getattr(rect, field), abs_tol=1e-9)


def test_detection_scale_maps_back_to_points():
    pixel_rect = Rect(100, 100, 200, 200)

    assert to_native(pixel_rect, 2.0) == Rect(50, 50, 100, 100)
    assert to_pixels_at_scale(Rect(50, 50, 100, 100), 1.5) == Rect(75, 75, 150, 150)


def test_to_display_uses_on_screen_ratio():
    rect = to_display(Rect(150, 150, 300, 300), rendered_width_on_screen=450, intrinsic_rendered_width=900)

    assert rect == Rect(75, 75, 150, 150)


@pytest.mark.parametrize("scale", [0, -1.0, float("inf")])
def test_invalid_scale_rejected(scale):
    with pytest.raises(ValueError):
        to_native(Rect(0, 0, 1, 1), scale)
    with pytest.raises(ValueError):
        to_pixels_at_scale(Rect(0, 0, 1, 1), scale)


def test_to_display_rejects_zero_width():
    with pytest.raises(ValueError):
        to_display(Rect(0, 0, 1, 1), 0, 100)


def test_bounding_rect_handles_rotated_corners():
    corners = [(60, 10), (110, 60), (60, 110), (10, 60)]

    assert bounding_rect(corners) == Rect(10, 10, 100, 100)


def test_clamp_and_slices_stay_inside_buffer():
    rect = clamp_to_bounds(pad_rect(Rect(-5, 90, 20, 20), 10), 100, 100)

    assert rect == Rect(0, 80, 25, 20)
    rows, cols = to_pixel_slices(Rect(-3.2, 95.5, 10, 10), 100, 100)
    assert (rows.start, rows.stop) == (95, 100)
    assert (cols.start, cols.stop) == (0, 7)
