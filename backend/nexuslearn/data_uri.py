"""Validation of base64 data URIs sent to the AI flows."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from .config import get_settings
from .errors import ValidationFailure

PDF_MIME = "application/pdf"
MSWORD_MIME = "application/msword"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME = "text/plain"

DOCUMENT_MIME_TYPES = frozenset({PDF_MIME, MSWORD_MIME, DOCX_MIME, TEXT_MIME})

_DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?P<params>(?:;[\w.+-]+=[^;,]*)*);base64,(?P<data>.*)$",
    re.DOTALL,
)


@dataclass(frozen=True)
class DataUri:
    mime_type: str
    encoded: str
    size_bytes: int
    uri: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME

    def decode(self) -> bytes:
        return base64.b64decode(self.encoded)


def decoded_size(encoded: str) -> int:
    padding = len(encoded) - len(encoded.rstrip("="))
    return (len(encoded) * 3) // 4 - padding


def parse_data_uri(
    uri: str,
    *,
    allowed_types: Optional[Iterable[str]] = None,
    allow_images: bool = False,
    max_bytes: Optional[int] = None,
) -> DataUri:
    """Validate format, MIME type and size before any model call is attempted."""
    if not uri or not uri.startswith("data:"):
        raise ValidationFailure("The file must be sent as a data URI ('data:<mimetype>;base64,<data>').")
    match = _DATA_URI_PATTERN.match(uri)
    if match is None:
        raise ValidationFailure("The file data URI must declare a MIME type and use base64 encoding.")

    mime_type = match.group("mime").lower()
    encoded = match.group("data").strip()
    allowed = frozenset(allowed_types) if allowed_types is not None else None
    if allowed is not None:
        permitted = mime_type in allowed or (allow_images and mime_type.startswith("image/"))
        if not permitted:
            raise ValidationFailure(f"File type '{mime_type}' is not supported here.")

    if not encoded:
        raise ValidationFailure("The uploaded file is empty.")
    limit = max_bytes if max_bytes is not None else get_settings().max_upload_bytes
    size = decoded_size(encoded)
    if size > limit:
        raise ValidationFailure(
            f"The file is too large ({size / (1024 * 1024):.1f} MB); the limit is {limit // (1024 * 1024)} MB."
        )
    try:
        base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationFailure("The file data is not valid base64.") from exc
    return DataUri(mime_type=mime_type, encoded=encoded, size_bytes=size, uri=uri)


__all__ = [
    "DOCUMENT_MIME_TYPES",
    "DOCX_MIME",
    "DataUri",
    "MSWORD_MIME",
    "PDF_MIME",
    "TEXT_MIME",
    "decoded_size",
    "parse_data_uri",
]
