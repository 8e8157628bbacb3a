"""
Background processing loop for queued uploads.

One asyncio task per process. It sleeps until the poll interval elapses or
`wake()` is called, then drains the queue one job at a time. `wake()` only sets
an asyncio.Event, so any number of wakes before the loop notices them collapse
into a single drain pass and the caller never blocks.

Stopping is cooperative: `shutdown()` is honoured between jobs only, an
in-flight pipeline call always runs to completion.
"""
from __future__ import annotations

import asyncio
import traceback
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .exceptions import ContentError, PhotoIngestError, friendly_upload_error
from .job_queue import JobQueue
from .logger import logger
from .models import JOB_COMPLETED, JOB_FAILED, Job
from .pipeline.pipeline import ImagePipeline
from .storage import remove_quietly

STATE_IDLE = "idle"
STATE_DRAINING = "draining"

DEFAULT_POLL_INTERVAL_SECONDS = 2.0


class Worker:
    def __init__(
        self,
        queue: JobQueue,
        pipeline: ImagePipeline,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_upload_bytes: Optional[int] = None,
    ):
        self.queue = queue
        self.pipeline = pipeline
        self.poll_interval = poll_interval
        self.max_upload_bytes = max_upload_bytes or pipeline.settings.MAX_UPLOAD_BYTES
        self.state = STATE_IDLE
        self.passes = 0
        self._wake = asyncio.Event()
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def wake_pending(self) -> bool:
        return self._wake.is_set()

    def wake(self) -> None:
        """Ask the loop to drain the queue now. Never blocks; repeated calls coalesce."""
        self._wake.set()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run())
        logger.info("Worker: started background processing queue")

    def shutdown(self) -> None:
        """Request the loop to exit after the current job, if any."""
        self._stopping.set()
        # Unblock the idle wait so the loop notices promptly.
        self._wake.set()

    async def wait(self) -> None:
        """Block until the loop has fully exited."""
        if self._task is None:
            return
        await self._task
        self._task = None

    async def stop(self) -> None:
        logger.info("Worker: waiting for active jobs to finish...")
        self.shutdown()
        await self.wait()
        logger.info("Worker: stopped")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._stopping.is_set():
                break

            self.state = STATE_DRAINING
            self.passes += 1
            try:
                await self.drain()
            finally:
                self.state = STATE_IDLE

        logger.info("Worker: stop requested, leaving loop")

    async def drain(self) -> int:
        """Process jobs until the queue is empty or a stop is requested."""
        processed = 0
        while not self._stopping.is_set():
            if not await self.process_next_job():
                break
            processed += 1
        return processed

    async def process_next_job(self) -> bool:
        """Claim and process one job. Returns False when there was nothing to do."""
        try:
            job = await self.queue.claim_next()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Worker error checking queue: {e}", extra={"error": str(e)})
            return False

        if job is None:
            return False

        logger.info(
            f"Worker: processing job {job.id} for file {job.original_filename}",
            extra={"job_id": job.id, "album_id": job.album_id},
        )

        error = await self._process(job)
        if error is None:
            await self._finish(job, JOB_COMPLETED)
        else:
            await self._finish(job, JOB_FAILED, error)
        return True

    async def _process(self, job: Job) -> Optional[str]:
        """Run the pipeline for job. Returns an error message, or None on success."""
        try:
            try:
                upload = open(job.temp_path, "rb")
            except OSError as e:
                return f"failed to open temp file: {e}"
            with upload:
                photo = await self.pipeline.process_and_save(job.album_id, upload)
        except ContentError as e:
            logger.warning(
                f"Worker: job {job.id} rejected: {e.message}",
                extra={"job_id": job.id, "album_id": job.album_id, "error_code": e.code},
            )
            return friendly_upload_error(e, self.max_upload_bytes)
        except PhotoIngestError as e:
            logger.error(
                f"Worker: job {job.id} failed: {e.message}",
                extra={"job_id": job.id, "album_id": job.album_id, "error_code": e.code},
            )
            return friendly_upload_error(e, self.max_upload_bytes)
        except Exception as e:
            logger.error(
                f"Worker: job {job.id} failed: {e}",
                extra={
                    "job_id": job.id,
                    "album_id": job.album_id,
                    "error": str(e),
                    "traceback": traceback.format_exc(),
                },
            )
            return f"Upload failed: {e}"
        finally:
            remove_quietly(job.temp_path)

        logger.info(
            f"Worker: job {job.id} completed as photo {photo.id}",
            extra={"job_id": job.id, "album_id": job.album_id, "photo_id": photo.id},
        )
        return None

    async def _finish(self, job: Job, status: str, error_message: Optional[str] = None) -> None:
        try:
            await self.queue.update_status(job.id, status, error_message)
        except SQLAlchemyError as e:
            logger.error(
                f"Worker: failed to update status to {status} for job {job.id}: {e}",
                extra={"job_id": job.id, "status": status, "error": str(e)},
            )

