"""
On-disk layout and atomic writes for stored photos.

Layout: {base_dir}/photos/{yyyy}/{mm}/{album_id}/{photo_id}.{ext}

The year/month come from the photo's persisted created_at, so every later
recomputation of the path lands on the same file.
"""
from __future__ import annotations

import os
import tempfile
from datetime import datetime, timezone
from typing import BinaryIO, Union

from .logger import logger

_CHUNK_SIZE = 64 * 1024


def photo_path_at(base_dir: str, album_id: int, photo_id: int, image_format: str, created_at: datetime) -> str:
    if created_at.tzinfo is None:
        # SQLite hands back naive datetimes; everything is stored as UTC.
        created_at = created_at.replace(tzinfo=timezone.utc)
    t = created_at.astimezone(timezone.utc)
    ext = image_format.lower().lstrip(".")
    return os.path.join(
        base_dir,
        "photos",
        f"{t.year:04d}",
        f"{t.month:02d}",
        str(album_id),
        f"{photo_id}.{ext}",
    )


def ensure_dir(path: str) -> None:
    os.makedirs(path, mode=0o755, exist_ok=True)


def atomic_write(path: str, data: Union[bytes, BinaryIO]) -> int:
    """
    Write data to path atomically using a temp file in the same directory.

    The temp file is written, flushed, fsynced and closed before being renamed
    over the final name, so readers never observe a partial file. Returns the
    number of bytes written. Raises OSError on any failure; the temp file is
    removed in that case.
    """
    directory = os.path.dirname(path) or "."
    ensure_dir(directory)

    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    written = 0
    try:
        with os.fdopen(fd, "wb") as tmp:
            if isinstance(data, (bytes, bytearray, memoryview)):
                tmp.write(data)
                written = len(data)
            else:
                while True:
                    chunk = data.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    tmp.write(chunk)
                    written += len(chunk)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        remove_quietly(tmp_name)
        raise
    return written


def remove_quietly(path: str) -> bool:
    """Remove a file, ignoring a missing file. Returns True if something was deleted."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}", extra={"path": path, "error": str(e)})
        return False
