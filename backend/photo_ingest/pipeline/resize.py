from __future__ import annotations

from typing import Tuple

from PIL import Image

# Largest side of a stored photo.
MAX_PIPELINE_DIMENSION = 1920


def calculate_dimensions(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Fit (width, height) inside max_dimension preserving aspect ratio.

    The larger side becomes max_dimension; the other is scaled by integer
    division and never drops below 1. Sizes already within bounds are returned
    unchanged.
    """
    if width <= 0 or height <= 0 or max_dimension <= 0:
        return width, height
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, (height * max_dimension) // width)
    return max(1, (width * max_dimension) // height), max_dimension


def resize(img: Image.Image, max_dimension: int = MAX_PIPELINE_DIMENSION) -> Image.Image:
    new_size = calculate_dimensions(img.width, img.height, max_dimension)
    if new_size == img.size:
        return img
    return img.resize(new_size, Image.Resampling.LANCZOS)
