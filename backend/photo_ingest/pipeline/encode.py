from __future__ import annotations

from typing import BinaryIO

from PIL import Image

from ..exceptions import EncodeFailedError
from ..logger import logger

DEFAULT_WEBP_QUALITY = 80
DEFAULT_AVIF_QUALITY = 60
DEFAULT_AVIF_SPEED = 6


class CountingWriter:
    """Wraps a writable binary stream and counts the bytes passed through it."""

    def __init__(self, target: BinaryIO):
        self._target = target
        self.count = 0

    def write(self, data) -> int:
        written = self._target.write(data)
        if written is None:
            written = len(data)
        self.count += written
        return written

    def flush(self) -> None:
        flush = getattr(self._target, "flush", None)
        if flush is not None:
            flush()


def normalize_format(image_format: str) -> str:
    fmt = (image_format or "").strip().lower().lstrip(".")
    return fmt or "webp"


def encode_webp(img: Image.Image, target: BinaryIO, quality: int = DEFAULT_WEBP_QUALITY) -> int:
    """Encode img as lossy WebP into target. Returns the encoded size in bytes."""
    quality = max(0, min(100, quality))
    writer = CountingWriter(target)
    try:
        img.save(writer, format="WEBP", quality=quality)
    except Exception as e:
        raise EncodeFailedError("webp", e) from e

    logger.info(f"webp encoded size={writer.count} quality={quality}")
    return writer.count


def encode_avif(
    img: Image.Image,
    target: BinaryIO,
    quality: int = DEFAULT_AVIF_QUALITY,
    speed: int = DEFAULT_AVIF_SPEED,
) -> int:
    """Encode img as AVIF into target. Returns the encoded size in bytes."""
    quality = max(0, min(100, quality))
    speed = max(0, min(10, speed))

    writer = CountingWriter(target)
    try:
        img.save(writer, format="AVIF", quality=quality, speed=speed)
    except Exception as e:
        raise EncodeFailedError("avif", e) from e

    logger.info(f"avif encoded size={writer.count} quality={quality} speed={speed}")
    return writer.count


def encode(
    img: Image.Image,
    target: BinaryIO,
    image_format: str,
    webp_quality: int = DEFAULT_WEBP_QUALITY,
    avif_quality: int = DEFAULT_AVIF_QUALITY,
    avif_speed: int = DEFAULT_AVIF_SPEED,
) -> int:
    fmt = normalize_format(image_format)
    if fmt == "webp":
        return encode_webp(img, target, webp_quality)
    if fmt == "avif":
        return encode_avif(img, target, avif_quality, avif_speed)
    raise EncodeFailedError(fmt, ValueError(f"unsupported format: {image_format}"))
