from photo_ingest.job_queue import JobStatusCounts
from photo_ingest.services.upload_progress import is_drained, percent_complete


def test_empty_album_is_done():
    counts = JobStatusCounts()
    assert is_drained(counts)
    assert percent_complete(counts) == 100


def test_failed_jobs_count_as_finished():
    counts = JobStatusCounts(completed=3, failed=1)
    assert is_drained(counts)
    assert percent_complete(counts) == 100


def test_in_flight_work_is_not_drained():
    assert not is_drained(JobStatusCounts(pending=1, completed=2))
    assert not is_drained(JobStatusCounts(processing=1))


def test_percent_rounds_down():
    assert percent_complete(JobStatusCounts(pending=2, completed=1)) == 33
