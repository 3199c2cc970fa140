"""Decoding and size validation of uploaded images."""

import base64
import binascii
from dataclasses import dataclass

from .errors import ImageTooLarge, ValidationError

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    media_type: str  # e.g. "image/jpeg"; "" when the payload had no data-URL header


def decode_data_url(image_data: str) -> ImagePayload:
    """
    Decode "data:image/jpeg;base64,<payload>".

    A bare base64 string (no "data:" header) is accepted as well.
    """
    header, sep, payload = image_data.partition(",")
    if not sep:
        header, payload = "", image_data
    media_type = ""
    if header.startswith("data:"):
        media_type = header[len("data:"):].split(";", 1)[0]
    try:
        data = base64.b64decode(payload.strip(), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Image data is not valid base64: {e}") from e
    if not data:
        raise ValidationError("Image data is empty")
    return ImagePayload(data=data, media_type=media_type)


def load_image(image_data: str, max_bytes: int = DEFAULT_MAX_BYTES) -> ImagePayload:
    """Decode an uploaded image and enforce the size limit on the decoded bytes."""
    payload = decode_data_url(image_data)
    if len(payload.data) > max_bytes:
        raise ImageTooLarge(len(payload.data), max_bytes)
    return payload
