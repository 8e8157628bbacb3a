import asyncio

import pytest

from photo_ingest.job_queue import JobQueue, JobStatusCounts
from photo_ingest.models import JOB_COMPLETED, JOB_FAILED, JOB_PENDING, JOB_PROCESSING


@pytest.mark.asyncio
async def test_enqueue_creates_pending_job(session_factory):
    queue = JobQueue(session_factory)
    job = await queue.enqueue(1, "cat.jpg", "/tmp/upload-1.tmp")

    stored = await queue.get(job.id)
    assert stored.status == JOB_PENDING
    assert stored.original_filename == "cat.jpg"
    assert stored.temp_path == "/tmp/upload-1.tmp"
    assert stored.error_message is None


@pytest.mark.asyncio
async def test_claim_returns_oldest_pending_first(session_factory):
    queue = JobQueue(session_factory)
    first = await queue.enqueue(1, "a.jpg", "/tmp/a")
    second = await queue.enqueue(2, "b.jpg", "/tmp/b")

    claimed = await queue.claim_next()
    assert claimed.id == first.id
    assert claimed.status == JOB_PROCESSING

    claimed = await queue.claim_next()
    assert claimed.id == second.id

    assert await queue.claim_next() is None


@pytest.mark.asyncio
async def test_claim_on_empty_queue(session_factory):
    assert await JobQueue(session_factory).claim_next() is None


@pytest.mark.asyncio
async def test_concurrent_claims_never_share_a_job(session_factory):
    queue = JobQueue(session_factory)
    ids = {(await queue.enqueue(1, f"{i}.jpg", f"/tmp/{i}")).id for i in range(5)}

    claimed = await asyncio.gather(*(queue.claim_next() for _ in range(8)))
    claimed_ids = [job.id for job in claimed if job is not None]

    assert sorted(claimed_ids) == sorted(ids)
    assert len(set(claimed_ids)) == len(claimed_ids)


@pytest.mark.asyncio
async def test_update_status_records_failure_message(session_factory):
    queue = JobQueue(session_factory)
    job = await queue.enqueue(1, "a.jpg", "/tmp/a")
    await queue.claim_next()

    await queue.update_status(job.id, JOB_FAILED, "We couldn't read this image.")
    stored = await queue.get(job.id)
    assert stored.status == JOB_FAILED
    assert stored.error_message == "We couldn't read this image."


@pytest.mark.asyncio
async def test_completed_clears_error_message(session_factory):
    queue = JobQueue(session_factory)
    job = await queue.enqueue(1, "a.jpg", "/tmp/a")
    await queue.update_status(job.id, JOB_COMPLETED, "ignored")
    assert (await queue.get(job.id)).error_message is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [JOB_PENDING, JOB_PROCESSING, "bogus"])
async def test_update_status_rejects_non_terminal(session_factory, status):
    queue = JobQueue(session_factory)
    job = await queue.enqueue(1, "a.jpg", "/tmp/a")
    with pytest.raises(ValueError):
        await queue.update_status(job.id, status)


@pytest.mark.asyncio
async def test_status_counts_per_album(session_factory):
    queue = JobQueue(session_factory)
    a = await queue.enqueue(1, "a.jpg", "/tmp/a")
    b = await queue.enqueue(1, "b.jpg", "/tmp/b")
    await queue.enqueue(1, "c.jpg", "/tmp/c")
    await queue.enqueue(1, "d.jpg", "/tmp/d")
    await queue.enqueue(2, "other.jpg", "/tmp/o")

    await queue.update_status(a.id, JOB_COMPLETED)
    await queue.update_status(b.id, JOB_FAILED, "bad")
    await queue.claim_next()  # album 1 "c.jpg" is the oldest pending

    counts = await queue.status_counts(1)
    assert counts == JobStatusCounts(pending=1, processing=1, completed=1, failed=1)
    assert counts.total == 4
    assert (await queue.status_counts(2)).pending == 1
    assert (await queue.status_counts(99)).total == 0


@pytest.mark.asyncio
async def test_purge_terminal_keeps_active_jobs(session_factory):
    queue = JobQueue(session_factory)
    done = await queue.enqueue(1, "a.jpg", "/tmp/a")
    failed = await queue.enqueue(2, "b.jpg", "/tmp/b")
    pending = await queue.enqueue(1, "c.jpg", "/tmp/c")
    await queue.update_status(done.id, JOB_COMPLETED)
    await queue.update_status(failed.id, JOB_FAILED, "bad")

    assert await queue.purge_terminal(album_id=1) == 1
    assert await queue.get(done.id) is None
    assert await queue.get(failed.id) is not None

    assert await queue.purge_terminal() == 1
    assert await queue.get(failed.id) is None
    assert (await queue.get(pending.id)).status == JOB_PENDING
