from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import TooLargeError, friendly_upload_error
from ..job_queue import JobQueue
from ..logger import logger
from ..storage import remove_quietly

TEMP_PREFIX = "upload-"
TEMP_SUFFIX = ".tmp"
COPY_CHUNK_SIZE = 64 * 1024


class UploadPart(Protocol):
    """What the receiver needs from a multipart part (starlette's UploadFile fits)."""

    filename: Optional[str]

    def read(self, size: int = -1) -> Awaitable[bytes]: ...


@dataclass
class UploadResult:
    filename: str
    job_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class UploadSummary:
    album_id: int
    results: List[UploadResult] = field(default_factory=list)

    @property
    def accepted(self) -> int:
        return sum(1 for r in self.results if r.job_id is not None)

    @property
    def rejected(self) -> int:
        return sum(1 for r in self.results if r.job_id is None)


class UploadReceiver:
    """
    Stages each uploaded part to a private temp file and enqueues a job for it.

    Processing happens later in the worker; `receive` returns as soon as every
    part is either queued or rejected.
    """

    def __init__(
        self,
        queue: JobQueue,
        wake_worker: Callable[[], None],
        max_bytes: int,
        temp_dir: Optional[str] = None,
    ):
        self.queue = queue
        self.wake_worker = wake_worker
        self.max_bytes = max_bytes
        self.temp_dir = temp_dir

    async def receive(self, album_id: int, parts: Iterable[UploadPart]) -> UploadSummary:
        summary = UploadSummary(album_id=album_id)

        for part in parts:
            filename = os.path.basename(part.filename or "") or "upload"
            summary.results.append(await self._receive_part(album_id, filename, part))

        self.wake_worker()

        logger.info(
            f"Upload received for album {album_id}: {summary.accepted} queued, {summary.rejected} rejected",
            extra={"album_id": album_id, "accepted": summary.accepted, "rejected": summary.rejected},
        )
        return summary

    async def _receive_part(self, album_id: int, filename: str, part: UploadPart) -> UploadResult:
        try:
            temp_path = await self.stage(part)
        except TooLargeError as e:
            logger.warning(
                f"Rejected oversize upload {filename}",
                extra={"album_id": album_id, "uploaded_file": filename, "max_bytes": self.max_bytes},
            )
            return UploadResult(filename=filename, error=friendly_upload_error(e, self.max_bytes))
        except OSError as e:
            logger.error(
                f"Failed to stage upload {filename}: {e}",
                extra={"album_id": album_id, "uploaded_file": filename, "error": str(e)},
            )
            return UploadResult(filename=filename, error="Upload failed while reading the file. Please try again.")

        try:
            job = await self.queue.enqueue(album_id, filename, temp_path)
        except SQLAlchemyError as e:
            remove_quietly(temp_path)
            logger.error(
                f"Failed to enqueue upload {filename}: {e}",
                extra={"album_id": album_id, "uploaded_file": filename, "error": str(e)},
            )
            return UploadResult(filename=filename, error="Upload failed. Please try again.")

        return UploadResult(filename=filename, job_id=job.id)

    async def stage(self, part: UploadPart) -> str:
        """
        Copy at most max_bytes + 1 bytes of part into a new 0600 temp file.

        Raises TooLargeError (after removing the temp file) when the part is
        bigger than max_bytes, OSError when reading or writing fails.
        """
        if self.temp_dir:
            os.makedirs(self.temp_dir, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=self.temp_dir)

        limit = self.max_bytes + 1
        copied = 0
        try:
            with os.fdopen(fd, "wb") as out:
                while copied < limit:
                    chunk = await part.read(min(COPY_CHUNK_SIZE, limit - copied))
                    if not chunk:
                        break
                    out.write(chunk)
                    copied += len(chunk)
        except BaseException:
            remove_quietly(temp_path)
            raise

        if copied > self.max_bytes:
            remove_quietly(temp_path)
            raise TooLargeError(self.max_bytes)

        return temp_path
