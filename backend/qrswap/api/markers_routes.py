from __future__ import annotations

import asyncio
import io
from http import HTTPStatus
from typing import Any, Dict, Optional, Tuple

import orjson
from flask import Blueprint, current_app, jsonify, request, send_file
from werkzeug.datastructures import FileStorage

from ..services.config.settings_manager import StyleSettingsManager, parse_style_settings
from ..services.markers.models import MarkerRecord, SourceDocument, StyleSpec, UploadedFile
from ..services.markers.source_loader import load_source
from ..services.pipeline.marker_extraction_service import MarkerExtractionService
from ..services.pipeline.marker_replacement_service import MarkerReplacementService
from ..services.pipeline.pipeline_settings import PipelineSettings
from ..utils.exceptions import InvalidRequestError

bp = Blueprint("markers", __name__, url_prefix="/markers")


def init_app(api_bp: Blueprint) -> None:
    api_bp.register_blueprint(bp)


def _pipeline_settings() -> PipelineSettings:
    return PipelineSettings.from_mapping(current_app.config)


def _style_manager() -> StyleSettingsManager:
    return current_app.extensions["qrswap.style_settings"]


def _read_upload(storage: FileStorage) -> UploadedFile:
    return UploadedFile(
        filename=storage.filename or "upload",
        data=storage.read(),
        mimetype=storage.mimetype or None,
    )


def _json_field(name: str) -> Optional[Dict[str, Any]]:
    raw = request.form.get(name)
    if raw is None:
        return None
    try:
        value = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise InvalidRequestError(f"{name} must be valid JSON") from exc
    if not isinstance(value, dict):
        raise InvalidRequestError(f"{name} must be a JSON object")
    return value


def _replacement_request() -> Tuple[SourceDocument, MarkerRecord, str, StyleSpec]:
    """Parse the multipart body shared by replace and preview.

    Fields: `file` (the source), `marker` (a record as returned by extract),
    `payload` (new link) and an optional `style`. Without a style the current
    settings are used, sized to the selected marker.
    """
    uploaded: FileStorage | None = request.files.get("file")
    if uploaded is None:
        raise InvalidRequestError("file is required")

    marker_data = _json_field("marker")
    if marker_data is None:
        raise InvalidRequestError("marker is required")
    try:
        marker = MarkerRecord.from_dict(marker_data)
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidRequestError(f"invalid marker: {exc}") from exc

    style_data = _json_field("style")
    if style_data is not None:
        style = parse_style_settings(style_data)
    else:
        style = StyleSpec.for_marker(marker, _style_manager().current)

    upload = _read_upload(uploaded)
    source = load_source(upload.filename, upload.data, upload.mimetype)
    return source, marker, request.form.get("payload", ""), style


@bp.post("/extract")
def extract_markers():
    files = request.files.getlist("files") or request.files.getlist("file")
    if not files:
        return jsonify({"error": "at least one file is required"}), HTTPStatus.BAD_REQUEST

    uploads = [_read_upload(storage) for storage in files]
    service = MarkerExtractionService(_pipeline_settings())
    summary = asyncio.run(service.extract_batch(uploads))
    return jsonify(summary.to_dict())


@bp.post("/replace")
def replace_marker():
    source, marker, payload, style = _replacement_request()
    service = MarkerReplacementService(_pipeline_settings())
    output = service.replace(source, marker, payload, style)
    return send_file(
        io.BytesIO(output.data),
        mimetype=output.mimetype,
        as_attachment=True,
        download_name=output.filename,
    )


@bp.post("/preview")
def preview_marker():
    source, marker, payload, style = _replacement_request()
    display_width = request.form.get("displayWidth", type=float)
    service = MarkerReplacementService(_pipeline_settings())
    preview = service.preview(source, marker, payload, style, display_width=display_width)
    return jsonify(preview.to_dict())
