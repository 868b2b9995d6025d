from __future__ import annotations

import base64
from typing import Any

import orjson
from flask.json.provider import DefaultJSONProvider


def _default(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(obj, (bytes, bytearray)):
        return base64.b64encode(bytes(obj)).decode("ascii")
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def dumps_bytes(obj: Any, *, indent: bool = False) -> bytes:
    option = orjson.OPT_SERIALIZE_NUMPY
    if indent:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, default=_default, option=option)


class ORJSONProvider(DefaultJSONProvider):
    """Flask JSON provider that uses orjson, aware of the pipeline's value objects."""

    def dumps(self, obj: Any, *, option: int | None = None, **kwargs: Any) -> str:
        opts = (option or orjson.OPT_INDENT_2) | orjson.OPT_SERIALIZE_NUMPY
        return orjson.dumps(obj, default=_default, option=opts).decode()

    def loads(self, s: str | bytes | bytearray, **kwargs: Any) -> Any:
        return orjson.loads(s)
