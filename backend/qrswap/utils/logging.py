from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger
import structlog

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
DEFAULT_PIPELINE_LOGGERS = ("qrswap.services.markers", "qrswap.services.pipeline")


def configure_logging(app: Any | None = None) -> None:
    """Send JSON records to stderr and route structlog through the stdlib root logger.

    Level and record fields come from LOG_LEVEL and LOG_FORMAT when an app is
    given, otherwise from QRSWAP_LOG_LEVEL.
    """
    config = app.config if app else {}
    log_level = config.get("LOG_LEVEL") or os.getenv("QRSWAP_LOG_LEVEL") or "INFO"

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(config.get("LOG_FORMAT") or DEFAULT_LOG_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # create_app may run more than once per process
    root_logger.handlers = [handler]

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class PipelineFileHandler(RotatingFileHandler):
    """Rotating file handler attached by configure_pipeline_logging."""


def configure_pipeline_logging(app: Any) -> Path | None:
    """Attach a rotating file log to the marker pipeline loggers.

    Returns the log file path, or None when the file log is disabled.
    """
    logger_names = tuple(app.config.get("PIPELINE_LOGGERS") or DEFAULT_PIPELINE_LOGGERS)
    for name in logger_names:
        pipeline_logger = logging.getLogger(name)
        for stale in [h for h in pipeline_logger.handlers if isinstance(h, PipelineFileHandler)]:
            pipeline_logger.removeHandler(stale)
            stale.close()

    if not app.config.get("ENABLE_PIPELINE_FILE_LOG", True):
        return None

    log_dir = Path(app.config.get("BASE_DIR", Path.cwd())) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / app.config.get("PIPELINE_LOG_FILE", "marker_pipeline.log")

    file_handler = PipelineFileHandler(
        str(log_file),
        maxBytes=int(app.config.get("PIPELINE_LOG_MAX_BYTES", 10_000_000)),
        backupCount=5,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
    ))

    for name in logger_names:
        pipeline_logger = logging.getLogger(name)
        pipeline_logger.addHandler(file_handler)
        pipeline_logger.setLevel(logging.DEBUG)

    app.logger.info(f"Pipeline logging configured: {log_file}")
    return log_file
