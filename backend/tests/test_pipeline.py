import io

import pytest
from PIL import Image, features

from photo_ingest.config import Settings
from photo_ingest.exceptions import InvalidDimensionsError, NotAnImageError
from photo_ingest.pipeline.pipeline import ImagePipeline

from conftest import make_image_bytes, png_header_only


def test_transform_produces_webp(settings):
    pipeline = ImagePipeline(settings, session_factory=None)
    encoded = pipeline.transform(io.BytesIO(make_image_bytes(2400, 1200)))

    assert encoded.image_format == "webp"
    assert (encoded.width, encoded.height) == (1920, 960)
    assert encoded.size_bytes == len(encoded.data)
    assert Image.open(io.BytesIO(encoded.data)).size == (1920, 960)


@pytest.mark.skipif(not features.check("avif"), reason="Pillow built without AVIF support")
def test_transform_produces_avif(tmp_path):
    settings = Settings(IMAGE_FORMAT="avif", DATA_DIR=str(tmp_path), _env_file=None)
    encoded = ImagePipeline(settings, session_factory=None).transform(io.BytesIO(make_image_bytes(40, 30)))

    assert encoded.image_format == "avif"
    assert encoded.data[4:12] in (b"ftypavif", b"ftypavis")


def test_transform_rejects_non_images(settings):
    with pytest.raises(NotAnImageError):
        ImagePipeline(settings, session_factory=None).transform(io.BytesIO(b"plain text"))


def test_transform_rejects_huge_dimensions(settings):
    # 8001 px wide, a single row: small file, oversize header
    data = make_image_bytes(8001, 1, fmt="PNG")
    with pytest.raises(InvalidDimensionsError):
        ImagePipeline(settings, session_factory=None).transform(io.BytesIO(data))


def test_transform_rejects_pixel_bomb_header(settings):
    with pytest.raises(InvalidDimensionsError):
        ImagePipeline(settings, session_factory=None).transform(io.BytesIO(png_header_only(20000, 10000)))
