from __future__ import annotations

import fitz
import PIL
import zxingcpp
from flask import Blueprint, jsonify

bp = Blueprint("health", __name__, url_prefix="/health")


def init_app(api_bp: Blueprint) -> None:
    api_bp.register_blueprint(bp)


@bp.get("/")
def health():
    return jsonify(
        {
            "status": "ok",
            "renderers": {
                "pymupdf": fitz.VersionBind,
                "pillow": PIL.__version__,
            },
            "detector": {"zxingcpp": getattr(zxingcpp, "__version__", "unknown")},
        }
    )
