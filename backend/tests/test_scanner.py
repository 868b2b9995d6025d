from __future__ import annotations

import numpy as np
import pytest

from conftest import DarkBlobDetector, ScriptedDetector
from qrswap.services.markers.detector import DetectionResult, MarkerDetector
from qrswap.services.markers.models import PixelBuffer, Rect
from qrswap.services.markers.scanner import MarkerScanner
from qrswap.utils.exceptions import DetectionError


def _page_with_blocks(blocks, size=(400, 300), block=40) -> PixelBuffer:
    pixels = np.full((size[1], size[0], 3), 255, dtype=np.uint8)
    for x, y in blocks:
        pixels[y : y + block, x : x + block] = 0
    return PixelBuffer(pixels, scale=1.0, native_width=size[0], native_height=size[1])


@pytest.mark.parametrize(
    "blocks",
    [
        [],
        [(30, 30)],
        [(20, 20), (200, 40), (100, 200)],
    ],
)
def test_scan_yields_one_hit_per_marker(blocks):
    buffer = _page_with_blocks(blocks)
    scanner = MarkerScanner(DarkBlobDetector(block=40), padding=4)

    hits = list(scanner.scan(buffer))

    assert len(hits) == len(blocks)
    assert {hit.payload for hit in hits} == {f"blob-{x}-{y}" for x, y in blocks}
    for i, first in enumerate(hits):
        for second in hits[i + 1 :]:
            assert not first.pixel_rect.intersects(second.pixel_rect)
    # every block has been painted over
    assert (buffer.pixels == 255).all()


def test_scan_suppresses_with_padding_before_next_call():
    found = DetectionResult.found("a", [(10, 10), (30, 10), (30, 30), (10, 30)])
    detector = ScriptedDetector([found])
    buffer = _page_with_blocks([], size=(100, 100))
    buffer.pixels[:] = 0

    hits = list(MarkerScanner(detector, padding=5).scan(buffer))

    assert [hit.pixel_rect for hit in hits] == [Rect(10, 10, 20, 20)]
    second_call = detector.calls[1]
    assert (second_call[5:35, 5:35] == 255).all()
    assert (second_call[:5] == 0).all()
    assert (second_call[36:] == 0).all()


def test_marker_touching_page_edge_is_clamped():
    buffer = _page_with_blocks([(360, 260)], size=(400, 300), block=40)
    detector = ScriptedDetector(
        [DetectionResult.found("edge", [(360, 260), (410, 260), (410, 310), (360, 310)])]
    )

    hits = list(MarkerScanner(detector, padding=10).scan(buffer))

    assert len(hits) == 1
    assert hits[0].pixel_rect == Rect(360, 260, 40, 40)
    assert hits[0].crop.shape == (40, 40, 3)
    assert (buffer.pixels == 255).all()


def test_detector_error_keeps_earlier_hits():
    detector = ScriptedDetector(
        [
            DetectionResult.found("first", [(0, 0), (10, 0), (10, 10), (0, 10)]),
            DetectionResult.error("decoder blew up"),
        ]
    )
    buffer = _page_with_blocks([], size=(50, 50))
    hits = []

    with pytest.raises(DetectionError, match="decoder blew up"):
        for hit in MarkerScanner(detector, padding=0).scan(buffer):
            hits.append(hit)

    assert [hit.payload for hit in hits] == ["first"]


def test_degenerate_box_is_an_error():
    detector = ScriptedDetector([DetectionResult.found("flat", [(5, 5), (5, 5), (5, 5), (5, 5)])])

    with pytest.raises(DetectionError):
        list(MarkerScanner(detector).scan(_page_with_blocks([], size=(20, 20))))


def test_iteration_guard_stops_runaway_detector():
    class StuckDetector(MarkerDetector):
        def detect(self, pixels):
            return DetectionResult.found("again", [(0, 0), (2, 0), (2, 2), (0, 2)])

    scanner = MarkerScanner(StuckDetector(), padding=0, max_iterations=5)

    with pytest.raises(DetectionError, match="5 markers"):
        list(scanner.scan(_page_with_blocks([], size=(20, 20))))


def test_multi_result_detector_bypasses_suppression():
    class MultiDetector(MarkerDetector):
        supports_multiple = True

        def detect(self, pixels):
            raise AssertionError("single-result path must not be used")

        def detect_all(self, pixels):
            return [
                DetectionResult.found("a", [(0, 0), (10, 0), (10, 10), (0, 10)]),
                DetectionResult.found("b", [(20, 20), (30, 20), (30, 30), (20, 30)]),
            ]

    buffer = _page_with_blocks([(0, 0), (20, 20)], size=(50, 50), block=10)
    scanner = MarkerScanner(MultiDetector())

    hits = list(scanner.scan(buffer))

    assert not scanner.uses_suppression
    assert [hit.payload for hit in hits] == ["a", "b"]
    assert (buffer.pixels[0:10, 0:10] == 0).all()


def test_suppress_strategy_forces_loop_on_multi_detector():
    detector = ScriptedDetector([])
    detector.supports_multiple = True

    scanner = MarkerScanner(detector, strategy="suppress")

    assert scanner.uses_suppression
    assert list(scanner.scan(_page_with_blocks([], size=(10, 10)))) == []


def test_unknown_strategy_rejected():
    with pytest.raises(ValueError):
        MarkerScanner(ScriptedDetector([]), strategy="magic")
