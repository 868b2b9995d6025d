from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, jsonify

load_dotenv(Path.cwd() / ".env")

from .config import get_config
from .extensions import init_extensions
from .utils.exceptions import MarkerPipelineError
from .utils.json import ORJSONProvider
from .utils.logging import configure_logging, configure_pipeline_logging, get_logger


def create_app(config_name: str | None = None) -> Flask:
    config_class = get_config(config_name)
    app = Flask(__name__)
    app.config.from_object(config_class)

    app.json = ORJSONProvider(app)

    configure_logging(app)
    configure_pipeline_logging(app)
    init_extensions(app)

    from .api import register_blueprints
    register_blueprints(app)

    register_error_handlers(app)

    app.logger.info(
        "qrswap initialized",
        extra={
            "pdf_detection_scale": app.config["PDF_DETECTION_SCALE"],
            "scan_strategy": app.config["MARKER_SCAN_STRATEGY"],
        },
    )
    return app


def register_error_handlers(app: Flask) -> None:
    logger = get_logger(__name__)

    @app.errorhandler(MarkerPipelineError)
    def handle_pipeline_error(error: MarkerPipelineError):
        logger.warning(
            "request failed",
            extra={"error": error.message, "error_type": type(error).__name__},
        )
        return jsonify({"error": error.message, "errorType": type(error).__name__}), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    def handle_too_large(error):
        return jsonify({"error": "Upload exceeds the configured size limit"}), 413

    @app.errorhandler(500)
    def handle_server_error(error):
        app.logger.exception("Unhandled server error")
        return jsonify({"error": "Internal server error"}), 500
