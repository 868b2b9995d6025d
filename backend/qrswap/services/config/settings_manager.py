from __future__ import annotations

from threading import RLock
from typing import Any, Dict, Mapping, Optional

import orjson

from ...utils.exceptions import SettingsFormatError
from ...utils.json import dumps_bytes
from ...utils.logging import get_logger
from ..markers.models import StyleSpec

EXPORT_FILENAME = "qr-settings.json"


def parse_style_settings(raw: bytes | str | Mapping[str, Any]) -> StyleSpec:
    """Parse an exported settings record; anything malformed raises SettingsFormatError."""
    if isinstance(raw, (bytes, bytearray, memoryview, str)):
        try:
            raw = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise SettingsFormatError(f"settings file is not valid JSON: {exc}") from exc
    if isinstance(raw, Mapping):
        raw = dict(raw)
    return StyleSpec.from_settings(raw)


class StyleSettingsManager:
    """Hold the current marker style shared by replacement and preview calls."""

    def __init__(self, defaults: Optional[Mapping[str, Any]] = None) -> None:
        self._lock = RLock()
        self.logger = get_logger(__name__)
        self._defaults = parse_style_settings(defaults) if defaults else StyleSpec()
        self._style = self._defaults

    def load(self) -> Dict[str, Any]:
        """Return the current style as a settings record."""
        with self._lock:
            return self._style.to_settings()

    @property
    def current(self) -> StyleSpec:
        with self._lock:
            return self._style

    def update(self, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a partial change; unknown keys are ignored, bad values are rejected."""
        with self._lock:
            merged = self._style.to_settings()
            for key in ("color", "backgroundColor", "size"):
                if key in updates:
                    merged[key] = updates[key]
            self._style = StyleSpec.from_settings(merged)
            return self._style.to_settings()

    def import_settings(self, raw: bytes | str | Mapping[str, Any]) -> Dict[str, Any]:
        style = parse_style_settings(raw)
        with self._lock:
            self._style = style
        self.logger.info("style settings imported", extra=style.to_settings())
        return style.to_settings()

    def export_settings(self) -> bytes:
        with self._lock:
            return dumps_bytes(self._style.to_settings(), indent=True)

    def reset(self) -> Dict[str, Any]:
        with self._lock:
            self._style = self._defaults
            return self._style.to_settings()
