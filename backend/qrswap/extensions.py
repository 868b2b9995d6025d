from __future__ import annotations

from flask_cors import CORS

from .services.config.settings_manager import StyleSettingsManager

cors = CORS()


def init_extensions(app) -> None:
    cors.init_app(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})
    # Current marker style lives for the lifetime of the app instance.
    app.extensions["qrswap.style_settings"] = StyleSettingsManager(app.config.get("DEFAULT_STYLE"))
