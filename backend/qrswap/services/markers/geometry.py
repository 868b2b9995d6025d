"""Conversions between detection pixels, render pixels and native units.

Detection scale, preview scale and output scale are chosen independently, so
every rectangle that crosses a stage boundary goes through native units.
"""
from __future__ import annotations

import math
from typing import Iterable, Sequence, Tuple

from .models import Rect

Point = Tuple[float, float]


def _require_positive(value: float, name: str) -> None:
    if not value > 0 or math.isinf(value):
        raise ValueError(f"{name} must be a positive finite number, got {value!r}")


def to_native(pixel_rect: Rect, scale: float) -> Rect:
    _require_positive(scale, "scale")
    return Rect(
        pixel_rect.x / scale,
        pixel_rect.y / scale,
        pixel_rect.width / scale,
        pixel_rect.height / scale,
    )


def to_pixels_at_scale(native_rect: Rect, scale: float) -> Rect:
    _require_positive(scale, "scale")
    return Rect(
        native_rect.x * scale,
        native_rect.y * scale,
        native_rect.width * scale,
        native_rect.height * scale,
    )


def to_display(
    pixel_rect: Rect,
    rendered_width_on_screen: float,
    intrinsic_rendered_width: float,
) -> Rect:
    """Map a render-scale rect onto an element that was resized after rasterization."""
    _require_positive(rendered_width_on_screen, "rendered_width_on_screen")
    _require_positive(intrinsic_rendered_width, "intrinsic_rendered_width")
    ratio = rendered_width_on_screen / intrinsic_rendered_width
    return Rect(
        pixel_rect.x * ratio,
        pixel_rect.y * ratio,
        pixel_rect.width * ratio,
        pixel_rect.height * ratio,
    )


def bounding_rect(points: Iterable[Point]) -> Rect:
    """Axis-aligned box over corner points; rotation-safe unlike a detector's own size."""
    pts: Sequence[Point] = list(points)
    if not pts:
        raise ValueError("bounding_rect needs at least one point")
    xs = [float(p[0]) for p in pts]
    ys = [float(p[1]) for p in pts]
    return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def pad_rect(rect: Rect, padding: float) -> Rect:
    return Rect(
        rect.x - padding,
        rect.y - padding,
        rect.width + 2 * padding,
        rect.height + 2 * padding,
    )


def clamp_to_bounds(rect: Rect, width: float, height: float) -> Rect:
    x0 = min(max(rect.x, 0.0), width)
    y0 = min(max(rect.y, 0.0), height)
    x1 = min(max(rect.right, 0.0), width)
    y1 = min(max(rect.bottom, 0.0), height)
    return Rect(x0, y0, x1 - x0, y1 - y0)


def to_pixel_slices(rect: Rect, width: int, height: int) -> Tuple[slice, slice]:
    """Row/column slices covering `rect`, widened to whole pixels and clipped to the buffer."""
    x0 = max(int(math.floor(rect.x)), 0)
    y0 = max(int(math.floor(rect.y)), 0)
    x1 = min(int(math.ceil(rect.right)), width)
    y1 = min(int(math.ceil(rect.bottom)), height)
    return slice(y0, max(y1, y0)), slice(x0, max(x1, x0))
