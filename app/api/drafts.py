"""
/api upload and draft endpoints.
Upload lands an extracted record in draft v1; the draft is then reviewed
(save, comment) and frozen into a shipment.
"""

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from app.api.errors import parse_id, to_http
from app.config import settings
from app.dependencies import get_draft_service, get_pipeline, verify_api_key
from app.errors import PipelineError
from app.pipeline.orchestrator import UploadPipeline
from app.review.drafts import DraftService
from app.schemas.drafts import (
    CommentRequest,
    DebugTextResponse,
    DraftResponse,
    FreezeResponse,
    OkResponse,
    SaveDraftRequest,
    UploadResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["drafts"], dependencies=[Depends(verify_api_key)])


async def _read_upload(file: UploadFile) -> bytes:
    if file.content_type and file.content_type not in settings.ALLOWED_MIME_TYPES.split(","):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail={
                "error": f"Unsupported file type: {file.content_type}. Allowed: {settings.ALLOWED_MIME_TYPES}",
                "error_code": "ERR_UNSUPPORTED_FORMAT",
            },
        )
    return await file.read()


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    file: UploadFile = File(...),
    pipeline: UploadPipeline = Depends(get_pipeline),
):
    """Upload a carrier notification PDF and extract it into a draft."""
    content = await _read_upload(file)
    try:
        response = await pipeline.upload(content)
    except PipelineError as e:
        raise to_http(e)

    logger.info(
        "document_uploaded",
        file_name=file.filename,
        file_size_bytes=len(content),
        draft_id=str(response.draft_id),
    )
    return response


@router.post("/debug-text", response_model=DebugTextResponse)
async def debug_text(
    file: UploadFile = File(...),
    pipeline: UploadPipeline = Depends(get_pipeline),
):
    """Return the winning recovered text without creating a draft."""
    content = await _read_upload(file)
    try:
        return await pipeline.debug_text(content)
    except PipelineError as e:
        raise to_http(e)


@router.get("/draft/{draft_id}", response_model=DraftResponse)
async def get_draft(draft_id: str, drafts: DraftService = Depends(get_draft_service)):
    try:
        draft, comments = await drafts.get(parse_id(draft_id))
    except PipelineError as e:
        raise to_http(e)
    return DraftResponse(draft=draft, comments=comments)


@router.post("/draft/{draft_id}/save", response_model=OkResponse)
async def save_draft(
    draft_id: str,
    body: SaveDraftRequest,
    drafts: DraftService = Depends(get_draft_service),
):
    try:
        await drafts.save(parse_id(draft_id), body.data)
    except PipelineError as e:
        raise to_http(e)
    return OkResponse()


@router.post("/draft/{draft_id}/comment", response_model=OkResponse)
async def comment_draft(
    draft_id: str,
    body: CommentRequest,
    drafts: DraftService = Depends(get_draft_service),
):
    try:
        await drafts.comment(parse_id(draft_id), body.field_name, body.message, body.author)
    except PipelineError as e:
        raise to_http(e)
    return OkResponse()


@router.post("/draft/{draft_id}/freeze", response_model=FreezeResponse)
async def freeze_draft(draft_id: str, drafts: DraftService = Depends(get_draft_service)):
    try:
        shipment_id = await drafts.freeze(parse_id(draft_id))
    except PipelineError as e:
        raise to_http(e)
    return FreezeResponse(shipment_id=shipment_id)
