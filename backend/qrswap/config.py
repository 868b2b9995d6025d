from __future__ import annotations

import os
from pathlib import Path
from typing import Any


def _parse_cors_origins() -> str | list[str]:
    default = (
        "http://localhost:3000,http://localhost:5173,"
        "http://127.0.0.1:3000,http://127.0.0.1:5173"
    )
    raw = os.getenv("QRSWAP_CORS_ORIGINS", default)
    if raw.strip() == "*":
        return "*"
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or "*"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class BaseConfig:
    BASE_DIR = Path.cwd()  # Base directory for logs
    SECRET_KEY = os.getenv("QRSWAP_SECRET_KEY", "dev-secret-key")
    JSON_SORT_KEYS = False
    MAX_CONTENT_LENGTH = int(os.getenv("QRSWAP_MAX_UPLOAD_MB", "100")) * 1024 * 1024
    CORS_ORIGINS = _parse_cors_origins()
    LOG_LEVEL = os.getenv("QRSWAP_LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("QRSWAP_LOG_FORMAT", "%(asctime)s %(levelname)s %(name)s %(message)s")
    ENABLE_PIPELINE_FILE_LOG = _env_flag("QRSWAP_ENABLE_PIPELINE_FILE_LOG", "true")
    PIPELINE_LOG_FILE = os.getenv("QRSWAP_PIPELINE_LOG_FILE", "marker_pipeline.log")
    PIPELINE_LOG_MAX_BYTES = int(os.getenv("QRSWAP_PIPELINE_LOG_MAX_BYTES", str(10_000_000)))
    PIPELINE_LOGGERS = ("qrswap.services.markers", "qrswap.services.pipeline")

    # Rasterization scales (multipliers on native points / pixels)
    PDF_DETECTION_SCALE = float(os.getenv("QRSWAP_PDF_DETECTION_SCALE", "2.0"))
    IMAGE_DETECTION_SCALE = float(os.getenv("QRSWAP_IMAGE_DETECTION_SCALE", "1.0"))
    PREVIEW_SCALE = float(os.getenv("QRSWAP_PREVIEW_SCALE", "1.5"))
    PDF_OUTPUT_SCALE = float(os.getenv("QRSWAP_PDF_OUTPUT_SCALE", "2.0"))
    OUTPUT_JPEG_QUALITY = int(os.getenv("QRSWAP_OUTPUT_JPEG_QUALITY", "95"))
    RASTER_ANTI_ALIASING = (
        int(os.getenv("QRSWAP_RASTER_ANTI_ALIASING"))
        if os.getenv("QRSWAP_RASTER_ANTI_ALIASING")
        else None
    )

    # Marker scanning
    MARKER_SUPPRESSION_PADDING = int(os.getenv("QRSWAP_MARKER_SUPPRESSION_PADDING", "10"))
    MARKER_SCAN_MAX_ITERATIONS = int(os.getenv("QRSWAP_MARKER_SCAN_MAX_ITERATIONS", "256"))
    MARKER_SCAN_STRATEGY = os.getenv("QRSWAP_MARKER_SCAN_STRATEGY", "auto")
    DETECTOR_MULTI_RESULT = _env_flag("QRSWAP_DETECTOR_MULTI_RESULT", "false")
    DETECTOR_TRY_HARDER = _env_flag("QRSWAP_DETECTOR_TRY_HARDER", "true")
    FILE_TASK_TIMEOUT_SECONDS = float(os.getenv("QRSWAP_FILE_TASK_TIMEOUT_SECONDS", "120"))

    REQUIRE_URL_PAYLOAD = _env_flag("QRSWAP_REQUIRE_URL_PAYLOAD", "true")
    DEFAULT_STYLE: dict[str, Any] = {
        "color": os.getenv("QRSWAP_DEFAULT_COLOR", "#000000"),
        "backgroundColor": os.getenv("QRSWAP_DEFAULT_BACKGROUND", "#FFFFFF"),
        "size": float(os.getenv("QRSWAP_DEFAULT_SIZE", "100")),
    }


class TestConfig(BaseConfig):
    TESTING = True
    LOG_LEVEL = "DEBUG"
    ENABLE_PIPELINE_FILE_LOG = False
    FILE_TASK_TIMEOUT_SECONDS = 0.0


class DevConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = "DEBUG"


config_by_name = {
    "development": DevConfig,
    "testing": TestConfig,
    "production": BaseConfig,
}


def get_config(config_name: str | None = None):
    if not config_name:
        config_name = os.getenv("QRSWAP_ENV", "development")
    return config_by_name.get(config_name.lower(), BaseConfig)
