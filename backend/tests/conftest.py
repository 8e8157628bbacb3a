import io
import os
import struct
import zlib

import pytest
import pytest_asyncio
from PIL import Image

from photo_ingest.config import Settings
from photo_ingest.db import create_engine, create_session_factory, init_models
from photo_ingest.pipeline.orient import EXIF_ORIENTATION_TAG


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        DATA_DIR=str(tmp_path / "data"),
        TEMP_UPLOAD_DIR=str(tmp_path / "uploads"),
        WORKER_POLL_INTERVAL_SECONDS=0.05,
        _env_file=None,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_engine(settings)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


def make_image_bytes(width=64, height=48, fmt="JPEG", color=(200, 30, 30), mode="RGB", orientation=None) -> bytes:
    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    kwargs = {}
    if orientation is not None:
        exif = Image.Exif()
        exif[EXIF_ORIENTATION_TAG] = orientation
        kwargs["exif"] = exif
    img.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def list_files(root, suffix=""):
    found = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if name.endswith(suffix):
                found.append(os.path.join(dirpath, name))
    return found


def png_header_only(width, height) -> bytes:
    """Signature plus IHDR and IEND: enough for Pillow to read the size, no pixel data."""
    def chunk(kind, body):
        return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body) & 0xFFFFFFFF)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IEND", b"")
