"""
Bounded read, content sniffing, decode and dimension validation.

Untrusted bytes go through here first. Nothing downstream sees an image that
has not passed every check in `validate_and_decode`.
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from typing import BinaryIO

from PIL import Image

from ..exceptions import DecodeFailedError, InvalidDimensionsError, NotAnImageError, TooLargeError

# Largest width or height accepted from an upload.
MAX_DIMENSION = 8000

SNIFF_LENGTH = 512

MIME_JPEG = "image/jpeg"
MIME_PNG = "image/png"
MIME_GIF = "image/gif"
MIME_WEBP = "image/webp"
MIME_AVIF = "image/avif"
MIME_UNKNOWN = "application/octet-stream"

# Pillow plugin names per sniffed type; only that plugin is allowed to parse the data.
PIL_FORMATS = {
    MIME_JPEG: "JPEG",
    MIME_PNG: "PNG",
    MIME_GIF: "GIF",
    MIME_WEBP: "WEBP",
    MIME_AVIF: "AVIF",
}


@dataclass
class DecodedImage:
    image: Image.Image
    content_type: str
    source: bytes

    @property
    def pil_format(self) -> str:
        return PIL_FORMATS[self.content_type]

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


def read_bounded(upload: BinaryIO, max_bytes: int) -> bytes:
    """
    Read at most max_bytes + 1 bytes; one extra byte proves the upload is oversize
    without trusting any declared length.
    """
    data = upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise TooLargeError(max_bytes)
    return data


def detect_content_type(data: bytes) -> str:
    head = data[:SNIFF_LENGTH]
    if head.startswith(b"\xff\xd8\xff"):
        return MIME_JPEG
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return MIME_PNG
    if head.startswith(b"GIF87a") or head.startswith(b"GIF89a"):
        return MIME_GIF
    if len(head) >= 12 and head[0:4] == b"RIFF" and head[8:12] == b"WEBP":
        return MIME_WEBP
    if len(head) >= 12 and head[4:12] in (b"ftypavif", b"ftypavis"):
        return MIME_AVIF
    return MIME_UNKNOWN


def validate_and_decode(upload: BinaryIO, max_bytes: int, max_dimension: int = MAX_DIMENSION) -> DecodedImage:
    data = read_bounded(upload, max_bytes)

    content_type = detect_content_type(data)
    pil_format = PIL_FORMATS.get(content_type)
    if pil_format is None:
        raise NotAnImageError(content_type)

    try:
        img = Image.open(io.BytesIO(data), formats=[pil_format])
    except Image.DecompressionBombError as e:
        # Pillow refuses far above max_dimension squared before reporting a size.
        raise InvalidDimensionsError(None, None, max_dimension) from e
    except Exception as e:
        raise DecodeFailedError(content_type, e) from e

    # The header is enough to know the size; refuse before allocating the raster.
    width, height = img.size
    if width < 1 or height < 1 or width > max_dimension or height > max_dimension:
        img.close()
        raise InvalidDimensionsError(width, height, max_dimension)

    try:
        img.load()
        img = _normalize_mode(img)
    except Exception as e:
        raise DecodeFailedError(content_type, e) from e

    return DecodedImage(image=img, content_type=content_type, source=data)


def _normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = "A" in img.getbands() or "transparency" in img.info
    return img.convert("RGBA" if has_alpha else "RGB")
