from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass
from typing import BinaryIO, Optional

from sqlalchemy.orm import sessionmaker

from ..audit import AuditLog
from ..config import Settings
from ..logger import logger
from ..models import Photo
from .decode import MAX_DIMENSION, validate_and_decode
from .encode import encode, normalize_format
from .orient import apply_exif_orientation
from .persist import save_processed_image
from .resize import resize


@dataclass
class EncodedImage:
    data: bytes
    width: int
    height: int
    size_bytes: int
    image_format: str


class ImagePipeline:
    """
    validate+decode -> EXIF orientation -> resize -> encode -> atomic persist
    """

    def __init__(self, settings: Settings, session_factory: sessionmaker, audit: Optional[AuditLog] = None):
        self.settings = settings
        self.session_factory = session_factory
        self.audit = audit

    @property
    def image_format(self) -> str:
        return normalize_format(self.settings.IMAGE_FORMAT)

    def transform(self, upload: BinaryIO) -> EncodedImage:
        """Run the CPU-bound steps. Raises a ContentError or EncodeFailedError."""
        decoded = validate_and_decode(upload, self.settings.MAX_UPLOAD_BYTES, MAX_DIMENSION)
        img = apply_exif_orientation(decoded.image, decoded.source, [decoded.pil_format])
        img = resize(img, self.settings.MAX_PIPELINE_DIMENSION)

        fmt = self.image_format
        buf = io.BytesIO()
        size_bytes = encode(
            img,
            buf,
            fmt,
            webp_quality=self.settings.WEBP_QUALITY,
            avif_quality=self.settings.AVIF_QUALITY,
            avif_speed=self.settings.AVIF_SPEED,
        )
        return EncodedImage(
            data=buf.getvalue(),
            width=img.width,
            height=img.height,
            size_bytes=size_bytes,
            image_format=fmt,
        )

    async def process_and_save(self, album_id: int, upload: BinaryIO) -> Photo:
        encoded = await asyncio.to_thread(self.transform, upload)
        logger.debug(
            f"Encoded upload for album {album_id}",
            extra={"album_id": album_id, "width": encoded.width, "height": encoded.height, "size_bytes": encoded.size_bytes},
        )
        return await save_processed_image(
            self.session_factory,
            self.settings.DATA_DIR,
            album_id,
            encoded.data,
            encoded.width,
            encoded.height,
            encoded.size_bytes,
            encoded.image_format,
            audit=self.audit,
        )
