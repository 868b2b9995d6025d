from __future__ import annotations

import io
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request, send_file

from ..services.config.settings_manager import EXPORT_FILENAME, StyleSettingsManager

bp = Blueprint("settings", __name__, url_prefix="/settings")


def init_app(api_bp: Blueprint) -> None:
    api_bp.register_blueprint(bp)


def _settings_manager() -> StyleSettingsManager:
    return current_app.extensions["qrswap.style_settings"]


@bp.get("/")
def get_settings():
    return jsonify(_settings_manager().load())


@bp.put("/")
def update_settings():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "request body must be a JSON object"}), HTTPStatus.BAD_REQUEST

    settings = _settings_manager().update(payload)
    return jsonify(settings)


@bp.post("/import")
def import_settings():
    uploaded = request.files.get("file")
    raw = uploaded.read() if uploaded is not None else request.get_data()
    if not raw:
        return jsonify({"error": "settings file is required"}), HTTPStatus.BAD_REQUEST

    settings = _settings_manager().import_settings(raw)
    return jsonify(settings)


@bp.get("/export")
def export_settings():
    return send_file(
        io.BytesIO(_settings_manager().export_settings()),
        mimetype="application/json",
        as_attachment=True,
        download_name=EXPORT_FILENAME,
    )
