from __future__ import annotations

from http import HTTPStatus


class MarkerPipelineError(Exception):
    """Base class for marker extraction and replacement errors."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedInputError(MarkerPipelineError):
    status_code = HTTPStatus.UNSUPPORTED_MEDIA_TYPE


class RenderError(MarkerPipelineError):
    pass


class DetectionError(MarkerPipelineError):
    def __init__(self, message: str, page_number: int | None = None):
        super().__init__(message)
        self.page_number = page_number


class EncodeError(MarkerPipelineError):
    pass


class SettingsFormatError(MarkerPipelineError):
    status_code = HTTPStatus.BAD_REQUEST


class InvalidRequestError(MarkerPipelineError):
    status_code = HTTPStatus.BAD_REQUEST
