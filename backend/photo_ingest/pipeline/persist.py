"""
Atomic persist: a Photo row and its file become visible together or not at all.

Order of operations:
  1. insert the Photo row inside an open transaction (id assigned on flush)
  2. compute the path from the row's persisted created_at
  3. atomic_write the encoded bytes (temp file + fsync + rename)
  4. write failed  -> rollback, SaveFailedError
  5. commit failed -> delete the written file, CommitFailedError
  6. success       -> best-effort audit event

A crash between step 3 and the commit leaves an orphaned file with no row.
The external sweep removes those; nothing here can close that window.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..audit import AuditLog
from ..exceptions import CommitFailedError, SaveFailedError
from ..logger import logger
from ..models import EVENT_UPLOAD, Photo, utcnow
from ..storage import atomic_write, photo_path_at, remove_quietly


async def save_processed_image(
    session_factory: sessionmaker,
    base_dir: str,
    album_id: int,
    encoded: bytes,
    width: int,
    height: int,
    size_bytes: int,
    image_format: str,
    audit: Optional[AuditLog] = None,
) -> Photo:
    ext = image_format.lower().lstrip(".")

    async with session_factory() as db:
        photo = Photo(
            album_id=album_id,
            filename=f"{uuid.uuid4().hex}.{ext}",
            width=width,
            height=height,
            size_bytes=size_bytes,
            format=ext,
            created_at=utcnow(),
        )
        db.add(photo)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            await db.rollback()
            raise SaveFailedError(f"create photo record: {e}") from e

        path = photo_path_at(base_dir, album_id, photo.id, ext, photo.created_at)

        try:
            await asyncio.to_thread(atomic_write, path, encoded)
        except OSError as e:
            await db.rollback()
            logger.error(
                f"Atomic write failed for album {album_id}: {e}",
                extra={"album_id": album_id, "path": path, "error": str(e)},
            )
            raise SaveFailedError(f"atomic write: {e}") from e

        try:
            await db.commit()
        except SQLAlchemyError as e:
            remove_quietly(path)
            logger.error(
                f"Commit failed for album {album_id}, removed {path}: {e}",
                extra={"album_id": album_id, "path": path, "error": str(e)},
            )
            raise CommitFailedError(f"commit photo record: {e}") from e

    logger.info(
        f"Stored photo {photo.id} for album {album_id}",
        extra={"album_id": album_id, "photo_id": photo.id, "path": path, "size_bytes": size_bytes},
    )

    if audit is not None:
        audit.emit(EVENT_UPLOAD, album_id=album_id, photo_id=photo.id)

    return photo
