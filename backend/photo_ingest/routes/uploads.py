"""
Upload routes - photo staging and progress
"""
from fastapi import APIRouter, Depends, File, Request, UploadFile
from typing import List

from ..exceptions import JobNotFoundError
from ..job_queue import JobQueue
from ..logger import logger
from ..schemas import AlbumUploadStatus, JobStatusResponse, UploadItem, UploadResponse
from ..services.upload_progress import is_drained, percent_complete
from ..services.upload_receiver import UploadReceiver

router = APIRouter(tags=["Uploads"])


def get_receiver(request: Request) -> UploadReceiver:
    return request.app.state.receiver


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue


@router.post("/albums/{album_id}/photos", response_model=UploadResponse, status_code=202)
async def upload_photos(
    album_id: int,
    photos: List[UploadFile] = File(...),
    receiver: UploadReceiver = Depends(get_receiver),
):
    """
    Stage uploaded photos and queue them for processing.
    Returns immediately; poll the album status for progress.
    """
    logger.info(
        "Upload request received",
        extra={"album_id": album_id, "file_count": len(photos)},
    )

    summary = await receiver.receive(album_id, photos)
    return UploadResponse(
        album_id=album_id,
        accepted=summary.accepted,
        rejected=summary.rejected,
        items=[UploadItem(filename=r.filename, job_id=r.job_id, error=r.error) for r in summary.results],
    )


@router.get("/albums/{album_id}/uploads/status", response_model=AlbumUploadStatus)
async def get_album_upload_status(album_id: int, queue: JobQueue = Depends(get_queue)):
    """
    Aggregate job counts for an album's uploads.
    """
    counts = await queue.status_counts(album_id)
    return AlbumUploadStatus(
        album_id=album_id,
        total=counts.total,
        percent_complete=percent_complete(counts),
        done=is_drained(counts),
        **counts.as_dict(),
    )


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: int, queue: JobQueue = Depends(get_queue)):
    """
    Get current status of a single upload job.
    """
    job = await queue.get(job_id)
    if not job:
        logger.warning(f"Job not found: {job_id}")
        raise JobNotFoundError(job_id)

    return JobStatusResponse(
        job_id=job.id,
        album_id=job.album_id,
        filename=job.original_filename,
        status=job.status,
        error=job.error_message,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )
