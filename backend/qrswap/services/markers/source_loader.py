from __future__ import annotations

import hashlib
from typing import Optional, Tuple

from ...utils.exceptions import UnsupportedInputError
from ...utils.logging import get_logger
from .models import SourceDocument, SourceKind

logger = get_logger(__name__)

IMAGE_EXTENSIONS = {
    "png": "PNG",
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "gif": "GIF",
    "bmp": "BMP",
    "tif": "TIFF",
    "tiff": "TIFF",
    "webp": "WEBP",
}

_SIGNATURES: Tuple[Tuple[bytes, SourceKind, Optional[str]], ...] = (
    (b"%PDF", SourceKind.PDF, None),
    (b"\x89PNG\r\n\x1a\n", SourceKind.IMAGE, "PNG"),
    (b"\xff\xd8\xff", SourceKind.IMAGE, "JPEG"),
    (b"GIF87a", SourceKind.IMAGE, "GIF"),
    (b"GIF89a", SourceKind.IMAGE, "GIF"),
    (b"BM", SourceKind.IMAGE, "BMP"),
    (b"II*\x00", SourceKind.IMAGE, "TIFF"),
    (b"MM\x00*", SourceKind.IMAGE, "TIFF"),
)

_MIMETYPES = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
    "WEBP": "image/webp",
}


def extension_for_format(image_format: str) -> str:
    for extension, known_format in IMAGE_EXTENSIONS.items():
        if known_format == image_format:
            return extension
    return image_format.lower()


def sniff_signature(data: bytes) -> Tuple[Optional[SourceKind], Optional[str]]:
    head = data[:16]
    for signature, kind, image_format in _SIGNATURES:
        if head.startswith(signature):
            return kind, image_format
    # PDF headers may be preceded by a little junk
    if b"%PDF" in data[:1024]:
        return SourceKind.PDF, None
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return SourceKind.IMAGE, "WEBP"
    return None, None


def _classify_by_name(filename: str, mimetype: str) -> Tuple[Optional[SourceKind], Optional[str]]:
    mimetype = (mimetype or "").lower()
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if mimetype == "application/pdf" or extension == "pdf":
        return SourceKind.PDF, None
    if extension in IMAGE_EXTENSIONS:
        return SourceKind.IMAGE, IMAGE_EXTENSIONS[extension]
    if mimetype.startswith("image/"):
        subtype = mimetype.split("/", 1)[1]
        return SourceKind.IMAGE, IMAGE_EXTENSIONS.get(subtype)
    return None, None


def load_source(filename: str, data: bytes, mimetype: str | None = None) -> SourceDocument:
    """Classify an uploaded file as a PDF or a supported image.

    Extension and MIME type decide first; the content signature is consulted
    when they are missing, generic, or disagree on the image format.
    """
    filename = filename or "upload"
    if not data:
        raise UnsupportedInputError(f"{filename}: file is empty")

    kind, image_format = _classify_by_name(filename, mimetype or "")
    sniffed_kind, sniffed_format = sniff_signature(data)

    if kind is None:
        if sniffed_kind is None:
            raise UnsupportedInputError(f"Unsupported file type: {filename}")
        logger.debug(
            "source classified by signature",
            extra={"filename": filename, "kind": sniffed_kind.value},
        )
        kind, image_format = sniffed_kind, sniffed_format
    elif kind is SourceKind.IMAGE and sniffed_kind is SourceKind.IMAGE:
        image_format = sniffed_format or image_format
    elif sniffed_kind is not None and sniffed_kind is not kind:
        raise UnsupportedInputError(
            f"{filename}: content looks like {sniffed_kind.value}, not {kind.value}"
        )

    if kind is SourceKind.PDF:
        resolved_mimetype = "application/pdf"
    else:
        resolved_mimetype = _MIMETYPES.get(image_format or "", mimetype or "application/octet-stream")

    return SourceDocument(
        filename=filename,
        data=data,
        kind=kind,
        mimetype=resolved_mimetype,
        image_format=image_format,
    )


def source_identity(source: SourceDocument) -> str:
    digest = hashlib.sha1(source.data).hexdigest()[:12]
    return f"{source.filename}-{digest}"
