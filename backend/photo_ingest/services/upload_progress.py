from __future__ import annotations

from ..job_queue import JobStatusCounts


def is_drained(counts: JobStatusCounts) -> bool:
    """True once no job for the album is waiting or being processed."""
    return counts.pending == 0 and counts.processing == 0


def percent_complete(counts: JobStatusCounts) -> int:
    """
    Share of jobs that reached a terminal state, rounded down.

    Failed jobs count as finished: they will not be retried, so the progress
    bar must be able to reach 100. An album with no jobs is reported as 100.
    """
    if counts.total == 0:
        return 100
    return ((counts.completed + counts.failed) * 100) // counts.total
