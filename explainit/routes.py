import logging
from typing import Optional

from fastapi import APIRouter, Form, HTTPException, UploadFile

from explainit.config import get_settings
from explainit.errors import PermissionDenied
from explainit.models import CaptureSource, ImageAsset, Notification, RunOutcome
from explainit.orchestrator import PipelineOrchestrator
from explainit.schemas import (
    HealthResponse,
    NotificationOut,
    PermissionDeniedRequest,
    RunResponse,
    SessionResponse,
)

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".webp", ".tiff"}
ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/bmp",
    "image/webp",
    "image/tiff",
}

# One session per process: a single current-run slot, as on the phone.
pipeline = PipelineOrchestrator()

explain_router = APIRouter(prefix="/explain")
health_router = APIRouter()


def _notification_out(
    notification: Optional[Notification],
) -> Optional[NotificationOut]:
    if notification is None:
        return None
    return NotificationOut(
        kind=notification.kind,
        title=notification.title,
        message=notification.message,
        stage=notification.stage.value if notification.stage else None,
    )


def _run_response(outcome: RunOutcome) -> RunResponse:
    return RunResponse(
        run_id=outcome.run_id,
        state=outcome.state.value,
        transitions=[s.value for s in outcome.transitions],
        superseded=outcome.superseded,
        extracted_text=outcome.extracted_text,
        explanation=outcome.explanation,
        failed_stage=outcome.failed_stage.value if outcome.failed_stage else None,
        payload_size=outcome.payload_size,
        notification=_notification_out(outcome.notification),
    )


@explain_router.post("/capture", response_model=RunResponse)
async def capture(
    file: UploadFile, source: CaptureSource = Form(CaptureSource.GALLERY)
):
    settings = get_settings()

    filename = file.filename or ""
    ext = ""
    if "." in filename:
        ext = "." + filename.rsplit(".", 1)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{ext}'. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        )

    if file.content_type and file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported content type '{file.content_type}'.",
        )

    file_bytes = await file.read()
    max_size = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(file_bytes) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File size exceeds maximum of {settings.MAX_FILE_SIZE_MB} MB.",
        )

    asset = ImageAsset(
        uri=f"upload://{filename}",
        source=source,
        data=file_bytes,
        known_size=len(file_bytes),
    )
    if not pipeline.running:
        raise HTTPException(status_code=503, detail="Pipeline is not running")

    outcome = await pipeline.submit(asset)
    return _run_response(outcome)


@explain_router.post("/permission-denied", response_model=NotificationOut)
async def permission_denied(body: PermissionDeniedRequest):
    notification = pipeline.handle_permission_denied(PermissionDenied(body.source))
    return _notification_out(notification)


@explain_router.get("/session", response_model=SessionResponse)
async def session():
    display = pipeline.display
    return SessionResponse(
        busy=display.busy,
        run_id=pipeline.latest_run_id or None,
        preview=display.preview,
        extracted_text=display.extracted_text,
        explanation=display.explanation,
        alerts=[_notification_out(n) for n in display.alerts],
    )


@health_router.get("/health", response_model=HealthResponse)
async def health_check():
    settings = get_settings()
    return HealthResponse(
        status="ok" if pipeline.running else "stopped",
        pipeline_state=pipeline.state.value,
        queue_depth=pipeline.queue_depth,
        ocr_url=settings.OCR_URL,
        analysis_url=f"{settings.ANALYSIS_BASE_URL.rstrip('/')}/api/analyze",
    )
