"""
Durable upload job queue backed by the `jobs` table.

Claiming is a single conditional UPDATE, so any number of workers (in this or
other processes) can share the table without handing the same job out twice.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import aliased, sessionmaker

from .logger import logger
from .models import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_PROCESSING,
    JOB_TERMINAL_STATUSES,
    Job,
    utcnow,
)


@dataclass(frozen=True)
class JobStatusCounts:
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.completed + self.failed

    def as_dict(self) -> Dict[str, int]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
        }


class JobQueue:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def enqueue(self, album_id: int, filename: str, temp_path: str) -> Job:
        async with self.session_factory() as db:
            job = Job(
                album_id=album_id,
                original_filename=filename,
                temp_path=temp_path,
                status=JOB_PENDING,
            )
            db.add(job)
            await db.commit()
            await db.refresh(job)

        logger.info(
            f"Job enqueued: {job.id}",
            extra={"job_id": job.id, "album_id": album_id, "original_filename": filename},
        )
        return job

    async def claim_next(self) -> Optional[Job]:
        """
        Mark the oldest pending job as processing and return it, or None when
        nothing is pending.
        """
        candidate = aliased(Job)
        oldest_pending = (
            select(candidate.id)
            .where(candidate.status == JOB_PENDING)
            .order_by(candidate.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(Job)
            .where(Job.id == oldest_pending, Job.status == JOB_PENDING)
            .values(status=JOB_PROCESSING, updated_at=utcnow())
            .returning(Job.id)
            .execution_options(synchronize_session=False)
        )

        async with self.session_factory() as db:
            res = await db.execute(stmt)
            job_id = res.scalar_one_or_none()
            if job_id is None:
                await db.rollback()
                return None
            job = await db.get(Job, job_id)
            await db.commit()
        return job

    async def update_status(self, job_id: int, status: str, error_message: Optional[str] = None) -> None:
        if status not in JOB_TERMINAL_STATUSES:
            raise ValueError(f"job status must be one of {JOB_TERMINAL_STATUSES}, got {status!r}")
        if status == JOB_COMPLETED:
            error_message = None

        async with self.session_factory() as db:
            await db.execute(
                update(Job)
                .where(Job.id == job_id)
                .values(status=status, error_message=error_message, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    async def get(self, job_id: int) -> Optional[Job]:
        async with self.session_factory() as db:
            res = await db.execute(select(Job).filter(Job.id == job_id))
            return res.scalar_one_or_none()

    async def status_counts(self, album_id: int) -> JobStatusCounts:
        async with self.session_factory() as db:
            res = await db.execute(
                select(Job.status, func.count())
                .where(Job.album_id == album_id)
                .group_by(Job.status)
            )
            counts = {status: int(n) for status, n in res.all()}

        return JobStatusCounts(
            pending=counts.get(JOB_PENDING, 0),
            processing=counts.get(JOB_PROCESSING, 0),
            completed=counts.get(JOB_COMPLETED, 0),
            failed=counts.get(JOB_FAILED, 0),
        )

    async def purge_terminal(self, album_id: Optional[int] = None) -> int:
        """Delete completed and failed jobs. Pending and processing rows are never touched."""
        stmt = delete(Job).where(Job.status.in_(JOB_TERMINAL_STATUSES))
        if album_id is not None:
            stmt = stmt.where(Job.album_id == album_id)

        async with self.session_factory() as db:
            res = await db.execute(stmt.execution_options(synchronize_session=False))
            await db.commit()
        return int(res.rowcount or 0)
