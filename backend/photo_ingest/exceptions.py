from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
import traceback
from typing import Optional
from .logger import logger


class PhotoIngestError(Exception):
    """Base exception for the photo ingest service"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class PipelineError(PhotoIngestError):
    """Raised by any step of the image pipeline"""


class ContentError(PipelineError):
    """The uploaded bytes are not acceptable; attributable to the uploader"""


class TooLargeError(ContentError):
    """Raised when the upload exceeds the per-file byte cap"""
    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(f"image exceeds size limit of {max_bytes} bytes", "IMAGE_TOO_LARGE", 413)


class NotAnImageError(ContentError):
    """Raised when the sniffed content type is not a supported image"""
    def __init__(self, content_type: str = "application/octet-stream"):
        self.content_type = content_type
        super().__init__(f"uploaded file is not an image ({content_type})", "NOT_AN_IMAGE", 415)


class DecodeFailedError(ContentError):
    """Raised when the decoder rejects the image data"""
    def __init__(self, content_type: str, cause: Exception):
        self.content_type = content_type
        self.cause = cause
        super().__init__(f"failed to decode {content_type}: {cause}", "DECODE_FAILED", 422)


class InvalidDimensionsError(ContentError):
    """Raised when width or height is outside [1, max_dimension]"""
    def __init__(self, width: Optional[int], height: Optional[int], max_dimension: int):
        self.width = width
        self.height = height
        self.max_dimension = max_dimension
        if width is None or height is None:
            size = "exceed the decoder pixel limit"
        else:
            size = f"{width}x{height} out of range"
        super().__init__(
            f"image dimensions {size} (1..{max_dimension})",
            "INVALID_DIMENSIONS",
            422,
        )


class EncodeFailedError(PipelineError):
    """Raised when the output encoder fails"""
    def __init__(self, image_format: str, cause: Exception):
        self.image_format = image_format
        self.cause = cause
        super().__init__(f"encode {image_format}: {cause}", "ENCODE_FAILED", 500)


class PersistenceError(PipelineError):
    """Raised when the photo file or its metadata row cannot be stored"""


class SaveFailedError(PersistenceError):
    """Raised when the file write fails; the metadata row was rolled back"""
    def __init__(self, message: str = "Failed to save processed image"):
        super().__init__(message, "SAVE_FAILED", 500)


class CommitFailedError(PersistenceError):
    """Raised when the metadata commit fails after the file was written"""
    def __init__(self, message: str = "Failed to commit photo record"):
        super().__init__(message, "COMMIT_FAILED", 500)


class JobNotFoundError(PhotoIngestError):
    """Raised when job is not found"""
    def __init__(self, job_id: int):
        super().__init__(f"Job {job_id} not found", "JOB_NOT_FOUND", 404)


def friendly_upload_error(exc: Exception, max_bytes: int) -> str:
    """
    Map an upload/pipeline error to a message suitable for the progress UI.
    """
    if isinstance(exc, NotAnImageError):
        return "Unsupported file type. Please upload a JPEG, PNG, GIF, WebP or AVIF image."
    if isinstance(exc, DecodeFailedError):
        return "We couldn't read this image. The file may be damaged."
    if isinstance(exc, InvalidDimensionsError):
        return f"Image width and height must be between 1 and {exc.max_dimension} pixels."
    if isinstance(exc, TooLargeError):
        limit = exc.max_bytes or max_bytes
        return f"File is too large. The limit is {_format_megabytes(limit)} per file."
    if isinstance(exc, PhotoIngestError):
        return f"Upload failed: {exc.message}"
    return "Upload failed. Please try again."


def _format_megabytes(num_bytes: int) -> str:
    mb = num_bytes / (1024 * 1024)
    if mb >= 1 and mb == int(mb):
        return f"{int(mb)}MB"
    if mb >= 1:
        return f"{mb:.1f}MB"
    return f"{num_bytes} bytes"


async def photo_ingest_exception_handler(request: Request, exc: PhotoIngestError):
    """Handle custom application exceptions"""
    logger.error(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "status_code": exc.status_code,
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": exc.detail,
            "status_code": exc.status_code,
        }
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An internal error occurred. Please try again later.",
        }
    )
