from fastapi import FastAPI, HTTPException, Request
from typing import Optional
import time

from .audit import AuditLog
from .config import Settings, load_settings
from .db import create_engine, create_session_factory, ensure_sqlite_directory, init_models
from .job_queue import JobQueue
from .logger import logger
from .pipeline.pipeline import ImagePipeline
from .routes import uploads
from .schemas import HealthResponse
from .services.upload_receiver import UploadReceiver
from .storage import ensure_dir
from .worker import Worker
from .exceptions import (
    PhotoIngestError,
    photo_ingest_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    logger.setLevel(settings.LOG_LEVEL)

    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    audit = AuditLog(session_factory, maxsize=settings.AUDIT_QUEUE_SIZE)
    queue = JobQueue(session_factory)
    pipeline = ImagePipeline(settings, session_factory, audit)
    worker = Worker(queue, pipeline, poll_interval=settings.WORKER_POLL_INTERVAL_SECONDS)
    receiver = UploadReceiver(
        queue,
        worker.wake,
        max_bytes=settings.MAX_UPLOAD_BYTES,
        temp_dir=settings.TEMP_UPLOAD_DIR,
    )

    app = FastAPI(
        title="Photo Ingest API",
        version="1.0.0",
        description="Staged photo uploads with background processing",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.audit = audit
    app.state.queue = queue
    app.state.pipeline = pipeline
    app.state.worker = worker
    app.state.receiver = receiver

    app.add_exception_handler(PhotoIngestError, photo_ingest_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()

        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
            }
        )

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            f"Response: {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            }
        )

        return response

    @app.on_event("startup")
    async def startup():
        logger.info("Starting Photo Ingest API")
        try:
            ensure_dir(settings.DATA_DIR)
            if settings.TEMP_UPLOAD_DIR:
                ensure_dir(settings.TEMP_UPLOAD_DIR)
            ensure_sqlite_directory(settings)
            await init_models(engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to initialize storage or database: {e}")
            raise
        audit.start()
        worker.start()

    @app.on_event("shutdown")
    async def shutdown():
        logger.info("Shutting down Photo Ingest API")
        await worker.stop()
        await audit.stop()
        await engine.dispose()

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok", "service": "photo-ingest"}

    app.include_router(uploads.router)
    return app


app = create_app()
