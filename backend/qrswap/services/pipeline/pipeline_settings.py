from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class PipelineSettings:
    pdf_detection_scale: float = 2.0
    image_detection_scale: float = 1.0
    preview_scale: float = 1.5
    pdf_output_scale: float = 2.0
    output_jpeg_quality: int = 95
    suppression_padding: int = 10
    scan_max_iterations: int = 256
    scan_strategy: str = "auto"
    detector_multi_result: bool = False
    detector_try_harder: bool = True
    file_task_timeout_seconds: float = 0.0
    require_url_payload: bool = True
    raster_anti_aliasing: Optional[int] = None
    default_style: Dict[str, Any] = field(
        default_factory=lambda: {"color": "#000000", "backgroundColor": "#FFFFFF", "size": 100}
    )

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "PipelineSettings":
        """Build settings from a Flask config (or any mapping of the same keys)."""
        defaults = cls()
        return cls(
            pdf_detection_scale=float(config.get("PDF_DETECTION_SCALE", defaults.pdf_detection_scale)),
            image_detection_scale=float(config.get("IMAGE_DETECTION_SCALE", defaults.image_detection_scale)),
            preview_scale=float(config.get("PREVIEW_SCALE", defaults.preview_scale)),
            pdf_output_scale=float(config.get("PDF_OUTPUT_SCALE", defaults.pdf_output_scale)),
            output_jpeg_quality=int(config.get("OUTPUT_JPEG_QUALITY", defaults.output_jpeg_quality)),
            suppression_padding=int(config.get("MARKER_SUPPRESSION_PADDING", defaults.suppression_padding)),
            scan_max_iterations=int(config.get("MARKER_SCAN_MAX_ITERATIONS", defaults.scan_max_iterations)),
            scan_strategy=str(config.get("MARKER_SCAN_STRATEGY", defaults.scan_strategy)),
            detector_multi_result=bool(config.get("DETECTOR_MULTI_RESULT", defaults.detector_multi_result)),
            detector_try_harder=bool(config.get("DETECTOR_TRY_HARDER", defaults.detector_try_harder)),
            file_task_timeout_seconds=float(
                config.get("FILE_TASK_TIMEOUT_SECONDS", defaults.file_task_timeout_seconds)
            ),
            require_url_payload=bool(config.get("REQUIRE_URL_PAYLOAD", defaults.require_url_payload)),
            raster_anti_aliasing=config.get("RASTER_ANTI_ALIASING", defaults.raster_anti_aliasing),
            default_style=dict(config.get("DEFAULT_STYLE", defaults.default_style)),
        )
