"""
FastAPI Main Application
Backend server for asynchronous recorded video interviews.
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response

from interview_recorder import __version__
from interview_recorder.config import Settings
from interview_recorder.core.errors import (
    CaptureError,
    NotFoundError,
    ScoringError,
    SessionLoadFailedError,
    StorageError,
    UnsupportedCodecError,
    UploadFailedError,
)
from interview_recorder.core.models import (
    CandidateData,
    CreateInterviewRequest,
    ErrorResponse,
    InterviewData,
    LogResponse,
    MediaBlob,
    RecordingsResponse,
    RegisterCandidateRequest,
    ScoreInterviewRequest,
    UploadFailureLog,
    UploadResponse,
)
from interview_recorder.core.question_order import generate_question_order
from interview_recorder.flow.controller import InterviewFlowController
from interview_recorder.media.browser_channel import BrowserChannel
from interview_recorder.scoring.schemas import CandidateContext, InterviewScore, JobContext
from interview_recorder.scoring.scoring_service import ScoringService, create_scoring_service
from interview_recorder.storage.base_store import RecordingStore
from interview_recorder.storage.blob_storage import (
    AzureBlobStorage,
    BlobStorage,
    LocalBlobStorage,
    is_allowed_content_type,
    normalize_content_type,
)
from interview_recorder.storage.json_store import JsonRecordingStore
from interview_recorder.upload.failure_log import UploadFailureLogger
from interview_recorder.upload.pipeline import UploadPipeline
from interview_recorder.upload.transfer import RecordingUploader
from interview_recorder.utils.logging_config import setup_logging
from interview_recorder.utils.metrics import http_requests_total, websocket_connections_total

# Configure logging (clean format by default, JSON for production via env var)
setup_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_format=os.getenv("LOG_FORMAT", "").lower() == "json"
)
logger = logging.getLogger(__name__)

# WebSocket application close codes
WS_NOT_FOUND = 4004
WS_CAPTURE_FAILED = 4400
WS_INTERNAL_ERROR = 4500


# Global state
settings: Optional[Settings] = None
store: Optional[RecordingStore] = None
blob_storage: Optional[BlobStorage] = None
scoring_service: Optional[ScoringService] = None
failure_logger = UploadFailureLogger()


def create_blob_storage(config: Settings) -> BlobStorage:
    backend = config.storage_backend.lower()
    if backend == "azure":
        return AzureBlobStorage(config.azure_storage_connection_string, config.azure_container_name)
    if backend == "local":
        return LocalBlobStorage(config.storage_dir, config.public_base_url)
    raise ValueError(f"Unknown storage backend: {backend}. Must be 'local' or 'azure'")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    global settings, store, blob_storage, scoring_service
    try:
        settings = Settings()
        logger.info("Settings loaded successfully")

        store = JsonRecordingStore(settings.data_file)
        logger.info(f"✓ Recording store initialized ({settings.data_file})")

        blob_storage = create_blob_storage(settings)
        logger.info(f"✓ Blob storage initialized (backend={settings.storage_backend})")

        try:
            scoring_service = create_scoring_service(
                settings.gemini_api_key,
                model=settings.gemini_model,
                temperature=settings.gemini_temperature,
                delay_seconds=settings.scoring_delay_seconds
            )
        except ScoringError as e:
            logger.error(f"Scoring service unavailable: {e}")
            scoring_service = None
        if scoring_service:
            logger.info(f"✓ Scoring service initialized with {settings.gemini_model}")
        else:
            logger.warning("  → Scoring endpoint will return 503")
    except Exception as e:
        logger.error(f"Failed to initialize application: {str(e)}")
        raise

    yield

    logger.info("Shutting down application...")
    store = None
    blob_storage = None
    scoring_service = None
    settings = None
    logger.info("Application shutdown complete")


# Initialize FastAPI app
app = FastAPI(
    title="Interview Recorder API",
    description="Backend API for timed, recorded video interviews",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def count_requests(request: Request, call_next):
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status_code=response.status_code
    ).inc()
    return response


def _require_ready():
    if store is None or blob_storage is None or settings is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized"
        )


@app.get("/")
async def root():
    """Root endpoint - simple API info."""
    return {
        "message": "Interview Recorder API",
        "status": "operational",
        "version": __version__
    }


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status with component checks (503 when storage is not ready)
    """
    health_status = {
        "status": "healthy",
        "version": __version__,
        "timestamp": time.time(),
        "components": {
            "recording_store": store is not None,
            "blob_storage": blob_storage is not None,
            "scoring_service": scoring_service is not None,
        }
    }

    if not (store is not None and blob_storage is not None):
        health_status["status"] = "degraded"
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=health_status
        )

    return health_status


@app.get("/metrics")
async def metrics():
    """
    Prometheus-compatible metrics endpoint.

    Returns:
        Text-formatted Prometheus metrics
    """
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# ==================== Interviews and Candidates ====================

@app.post(
    "/api/interview",
    response_model=InterviewData,
    status_code=status.HTTP_201_CREATED
)
async def create_interview(request: CreateInterviewRequest):
    _require_ready()
    return await store.create_interview(request)


@app.get("/api/interview/{interview_id}", response_model=InterviewData)
async def get_interview(interview_id: str):
    _require_ready()
    try:
        return await store.get_interview(interview_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@app.post(
    "/api/interview/{interview_id}/candidates",
    response_model=CandidateData,
    status_code=status.HTTP_201_CREATED
)
async def register_candidate(interview_id: str, request: RegisterCandidateRequest):
    """
    Register a candidate and fix their randomized question order.

    The order is generated once here and never changes for this candidate.
    """
    _require_ready()
    try:
        interview = await store.get_interview(interview_id)
        order = generate_question_order(len(interview.questions))
        candidate = await store.create_candidate(interview_id, request, order)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return candidate


@app.get("/api/interview/{interview_id}/candidate", response_model=CandidateData)
async def get_candidate(interview_id: str, candidate_id: Optional[str] = Query(None)):
    _require_ready()
    if not candidate_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Candidate ID is required")
    try:
        return await store.get_candidate(interview_id, candidate_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# ==================== Recordings ====================

@app.post(
    "/api/interview/{interview_id}/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED
)
async def upload_recording(
    interview_id: str,
    candidate_id: Optional[str] = Query(None),
    question_index: Optional[int] = Query(None, ge=0),
    duration: float = Query(0.0, ge=0, description="Recorded length in seconds"),
    video: UploadFile = File(..., description="Recorded answer (webm, mp4 or quicktime)")
):
    """
    Blob transfer endpoint: store one answer under its original question index.

    Re-uploading the same question replaces the earlier recording.
    """
    _require_ready()
    if not candidate_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Candidate ID is required")
    if question_index is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question index is required")

    content_type = video.content_type or ""
    if not is_allowed_content_type(content_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Content type not allowed: {content_type or 'missing'}"
        )

    try:
        interview = await store.get_interview(interview_id)
        await store.get_candidate(interview_id, candidate_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    if question_index >= len(interview.questions):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Question index {question_index} out of range (0-{len(interview.questions) - 1})"
        )

    data = await video.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty recording")

    blob = MediaBlob(data=data, mime_type=content_type, duration=duration)
    uploader = RecordingUploader(blob_storage, store, interview_id, candidate_id)
    try:
        url = await uploader(blob, question_index)
    except (UploadFailedError, StorageError) as e:
        logger.error(f"Upload error: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to upload video")

    return UploadResponse(
        url=url,
        question_index=question_index,
        content_type=normalize_content_type(content_type),
        size=blob.size
    )


@app.get("/api/interview/{interview_id}/upload", response_model=RecordingsResponse)
async def list_recordings(interview_id: str, candidate_id: Optional[str] = Query(None)):
    _require_ready()
    if not candidate_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Candidate ID is required")
    try:
        await store.get_candidate(interview_id, candidate_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return RecordingsResponse(recordings=await store.get_recordings(interview_id, candidate_id))


@app.get("/media/{path:path}")
async def serve_media(path: str):
    """Serve recordings written by the local blob storage backend."""
    if not isinstance(blob_storage, LocalBlobStorage):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    try:
        target = blob_storage.resolve(path)
    except StorageError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not target.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return FileResponse(target)


@app.post("/api/log-upload-failure", response_model=LogResponse)
async def log_upload_failure(request: Request):
    """
    Failure-logging sink. Never fails the caller: internal errors still return 200.
    """
    try:
        body = await request.json()
        entry = UploadFailureLog.model_validate(body)
    except Exception as e:
        logger.error(f"Failed to log upload failure: {e}")
        return LogResponse(success=False, error="Logging failed, but non-critical")

    if not entry.interview_id or not entry.candidate_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing required fields"}
        )

    try:
        failure_logger.log(entry, source="api")
    except Exception as e:
        logger.error(f"Failed to log upload failure: {e}")
        return LogResponse(success=False, error="Logging failed, but non-critical")

    return LogResponse(success=True, message="Logged")


# ==================== Scoring ====================

@app.post(
    "/api/interview/{interview_id}/candidates/{candidate_id}/score",
    response_model=InterviewScore
)
async def score_candidate(interview_id: str, candidate_id: str, request: ScoreInterviewRequest):
    """
    Score a candidate's transcripts (keyed by original question index).

    Returns:
        Per-question scores (0-2) and overall score (1-10) with feedback
    """
    _require_ready()
    if scoring_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scoring service not configured"
        )
    if not request.transcripts:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No transcripts provided")

    try:
        interview = await store.get_interview(interview_id)
        candidate = await store.get_candidate(interview_id, candidate_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    indices = sorted(request.transcripts)
    invalid = [i for i in indices if not 0 <= i < len(interview.questions)]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown question indices: {invalid}"
        )

    job_context = JobContext(
        job_title=interview.job_title,
        seniority=interview.seniority,
        industry=interview.industry,
        role_template=interview.role_template,
        key_responsibilities=interview.key_responsibilities,
        required_skills=interview.required_skills,
    )
    candidate_context = CandidateContext(
        years_experience=candidate.years_experience,
        candidate_name=candidate.name,
    )

    return await scoring_service.score_interview(
        [interview.questions[i] for i in indices],
        [request.transcripts[i] for i in indices],
        job_context,
        candidate_context
    )


# ==================== Interview WebSocket ====================

@app.websocket("/ws/interview/{interview_id}")
async def websocket_interview(websocket: WebSocket, interview_id: str, candidate_id: Optional[str] = None):
    """
    WebSocket endpoint running one interview attempt.

    The browser acts as a media proxy (see media/browser_channel.py); question
    sequencing, timers, uploads and retries run here.

    Flow:
    1. Load interview and candidate (close 4004 if either is missing)
    2. Request camera/microphone (close 4400 on capture or codec failure)
    3. Run questions until completed, timed out or exited
    4. Send the "completed" event with the redirect URL and close normally
    """
    if store is None or blob_storage is None or settings is None:
        await websocket.close(code=WS_INTERNAL_ERROR, reason="Service not initialized")
        return
    if not candidate_id:
        await websocket.close(code=WS_NOT_FOUND, reason="Candidate ID is required")
        return

    await websocket.accept()
    websocket_connections_total.labels(endpoint="/ws/interview", status="connected").inc()
    logger.info(f"WebSocket connection accepted for {interview_id}/{candidate_id}")

    channel = BrowserChannel(websocket)
    receiver = asyncio.create_task(channel.receive_loop())
    pipeline = UploadPipeline(
        RecordingUploader(blob_storage, store, interview_id, candidate_id),
        settings.upload_policy(),
        report_failure=UploadFailureLogger(interview_id, candidate_id).report
    )
    controller = InterviewFlowController(
        interview_id,
        candidate_id,
        store,
        channel,
        pipeline,
        channel.send_event,
        settings.timing_policy()
    )

    async def dispatch_commands():
        while True:
            command = await channel.next_command()
            if command is None:
                return
            await controller.handle_command(command)

    close_code = 1000
    close_reason = ""
    tasks = []
    try:
        await controller.load_session()
        await controller.start()

        tasks = [
            asyncio.create_task(dispatch_commands()),
            asyncio.create_task(controller.wait_for_outcome()),
        ]
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        if controller.outcome is not None:
            close_reason = controller.outcome.reason.value
        elif isinstance(controller.error, (CaptureError, UnsupportedCodecError)):
            # Camera lost mid-interview
            close_code, close_reason = WS_CAPTURE_FAILED, str(controller.error)[:120]
        elif channel.closed:
            logger.info(f"Browser left {interview_id}/{candidate_id} before completion")

    except SessionLoadFailedError as e:
        close_code, close_reason = WS_NOT_FOUND, str(e)[:120]
    except (CaptureError, UnsupportedCodecError) as e:
        close_code, close_reason = WS_CAPTURE_FAILED, str(e)[:120]
    except Exception as e:
        logger.error(f"Interview WebSocket error: {str(e)}", exc_info=True)
        websocket_connections_total.labels(endpoint="/ws/interview", status="error").inc()
        await channel.send_event("error", {"code": "internal_error", "message": str(e), "fatal": True})
        close_code, close_reason = WS_INTERNAL_ERROR, "Internal error"
    finally:
        for task in tasks:
            task.cancel()
        await controller.teardown()
        if not channel.closed:
            try:
                await websocket.close(code=close_code, reason=close_reason)
            except Exception as e:
                logger.debug(f"WebSocket already closed: {e}")
        receiver.cancel()
        await asyncio.gather(receiver, *tasks, return_exceptions=True)
        websocket_connections_total.labels(endpoint="/ws/interview", status="disconnected").inc()
        logger.info(f"WebSocket closed for {interview_id}/{candidate_id} (code={close_code})")


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom exception handler for HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), detail=str(exc.detail)).model_dump()
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Custom exception handler for unexpected exceptions."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="Internal server error", detail=str(exc)).model_dump()
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
