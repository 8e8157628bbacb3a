from __future__ import annotations

import io
from typing import Optional, Sequence

from PIL import Image

from ..logger import logger

EXIF_ORIENTATION_TAG = 0x0112

_TRANSPOSES = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


def read_orientation(source: bytes, formats: Optional[Sequence[str]] = None) -> Optional[int]:
    """
    Return the EXIF orientation (1-8) stored in source, or None when it is
    missing, unreadable or out of range. Only the plugins named in formats may
    parse source.
    """
    try:
        with Image.open(io.BytesIO(source), formats=formats) as img:
            value = img.getexif().get(EXIF_ORIENTATION_TAG)
    except Exception as e:
        logger.debug(f"EXIF orientation not readable: {e}")
        return None
    if isinstance(value, int) and 1 <= value <= 8:
        return value
    return None


def orientation_transform(img: Image.Image, orientation: int) -> Image.Image:
    """Flip/rotate img so that it displays upright for the given EXIF orientation."""
    method = _TRANSPOSES.get(orientation)
    if method is None:
        return img
    return img.transpose(method)


def apply_exif_orientation(img: Image.Image, source: bytes, formats: Optional[Sequence[str]] = None) -> Image.Image:
    # Missing or broken EXIF is normal for PNG/GIF and stripped JPEGs.
    orientation = read_orientation(source, formats)
    if orientation is None:
        return img
    return orientation_transform(img, orientation)
