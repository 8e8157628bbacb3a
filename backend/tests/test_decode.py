import io

import pytest
from PIL import Image

from photo_ingest.exceptions import DecodeFailedError, InvalidDimensionsError, NotAnImageError, TooLargeError
from photo_ingest.pipeline.decode import (
    MIME_AVIF,
    MIME_GIF,
    MIME_JPEG,
    MIME_PNG,
    MIME_UNKNOWN,
    MIME_WEBP,
    detect_content_type,
    read_bounded,
    validate_and_decode,
)

from conftest import make_image_bytes, png_header_only

MAX_BYTES = 25 * 1024 * 1024


@pytest.mark.parametrize(
    "fmt,expected",
    [("JPEG", MIME_JPEG), ("PNG", MIME_PNG), ("GIF", MIME_GIF), ("WEBP", MIME_WEBP)],
)
def test_detect_content_type(fmt, expected):
    color = 3 if fmt == "GIF" else (10, 20, 30)
    mode = "P" if fmt == "GIF" else "RGB"
    assert detect_content_type(make_image_bytes(8, 8, fmt=fmt, mode=mode, color=color)) == expected


def test_detect_avif_brand():
    header = b"\x00\x00\x00\x1cftypavif\x00\x00\x00\x00"
    assert detect_content_type(header) == MIME_AVIF


def test_detect_unknown():
    assert detect_content_type(b"%PDF-1.7 ...") == MIME_UNKNOWN
    assert detect_content_type(b"") == MIME_UNKNOWN


def test_read_bounded_accepts_exact_limit():
    assert read_bounded(io.BytesIO(b"x" * 10), 10) == b"x" * 10


def test_read_bounded_rejects_one_byte_over():
    with pytest.raises(TooLargeError) as exc:
        read_bounded(io.BytesIO(b"x" * 11), 10)
    assert exc.value.max_bytes == 10


def test_valid_jpeg_decodes_to_rgb():
    decoded = validate_and_decode(io.BytesIO(make_image_bytes(64, 48)), MAX_BYTES)
    assert decoded.content_type == MIME_JPEG
    assert (decoded.width, decoded.height) == (64, 48)
    assert decoded.image.mode == "RGB"


def test_transparent_png_keeps_alpha():
    data = make_image_bytes(16, 16, fmt="PNG", mode="RGBA", color=(0, 0, 0, 0))
    decoded = validate_and_decode(io.BytesIO(data), MAX_BYTES)
    assert decoded.image.mode == "RGBA"


def test_palette_gif_is_converted():
    data = make_image_bytes(16, 16, fmt="GIF", mode="P", color=1)
    decoded = validate_and_decode(io.BytesIO(data), MAX_BYTES)
    assert decoded.image.mode in ("RGB", "RGBA")


def test_text_file_is_not_an_image():
    with pytest.raises(NotAnImageError):
        validate_and_decode(io.BytesIO(b"hello, this is plainly text\n" * 10), MAX_BYTES)


def test_truncated_png_fails_to_decode():
    data = make_image_bytes(64, 64, fmt="PNG")
    with pytest.raises(DecodeFailedError):
        validate_and_decode(io.BytesIO(data[:40]), MAX_BYTES)


def test_jpeg_header_with_garbage_fails_to_decode():
    with pytest.raises(DecodeFailedError):
        validate_and_decode(io.BytesIO(b"\xff\xd8\xff" + b"\x00" * 200), MAX_BYTES)


def test_dimensions_over_limit_are_rejected():
    data = make_image_bytes(120, 10, fmt="PNG")
    with pytest.raises(InvalidDimensionsError) as exc:
        validate_and_decode(io.BytesIO(data), MAX_BYTES, max_dimension=100)
    assert (exc.value.width, exc.value.height) == (120, 10)
    assert exc.value.max_dimension == 100


def test_dimensions_at_limit_are_accepted():
    data = make_image_bytes(100, 100, fmt="PNG")
    decoded = validate_and_decode(io.BytesIO(data), MAX_BYTES, max_dimension=100)
    assert decoded.width == 100


def test_oversize_upload_rejected_before_decode():
    data = make_image_bytes(64, 64, fmt="PNG")
    with pytest.raises(TooLargeError):
        validate_and_decode(io.BytesIO(data), len(data) - 1)


def test_source_bytes_are_kept_for_exif():
    data = make_image_bytes(20, 10, orientation=6)
    decoded = validate_and_decode(io.BytesIO(data), MAX_BYTES)
    assert decoded.source == data
    assert isinstance(decoded.image, Image.Image)


@pytest.mark.parametrize("size", [(9000, 100), (20000, 10000), (60000, 60000)])
def test_huge_header_dimensions_are_invalid_not_undecodable(size):
    with pytest.raises(InvalidDimensionsError) as exc:
        validate_and_decode(io.BytesIO(png_header_only(*size)), MAX_BYTES)
    assert exc.value.max_dimension == 8000
    assert exc.value.code == "INVALID_DIMENSIONS"


def test_pixel_limit_error_has_no_known_size():
    with pytest.raises(InvalidDimensionsError) as exc:
        validate_and_decode(io.BytesIO(png_header_only(60000, 60000)), MAX_BYTES)
    assert exc.value.width is None and exc.value.height is None
    assert "8000" in exc.value.message


def test_decoded_image_reports_plugin():
    decoded = validate_and_decode(io.BytesIO(make_image_bytes(8, 8, fmt="PNG")), MAX_BYTES)
    assert decoded.pil_format == "PNG"
