"""Upload job endpoints: start, status, cancel and retry."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status

from app.dependencies import get_upload_service
from app.schemas.common import ApiResponse
from app.schemas.uploads import CancelResponse, StartUploadResponse, UploadJobSnapshot
from app.services.upload_service import UploadService, parse_models
from app.utils.logging import get_logger
from app.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


@router.post(
    "/start",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start processing an uploaded artifact",
    operation_id="start_upload",
)
async def start_upload(
    request: Request,
    upload_service: Annotated[UploadService, Depends(get_upload_service)],
    file: UploadFile = File(..., description="Recording, transcript or document"),
    design_week_id: UUID = Form(..., description="Engagement the artifact belongs to"),
    extraction_mode: Optional[str] = Form(default=None, description="standard, multi-model or two-pass"),
    models: Optional[str] = Form(default=None, description="Comma-separated providers for multi-model mode"),
) -> ApiResponse:
    """Validate and store the artifact, then queue it for the pipeline.

    Returns as soon as the job is queued; poll the status endpoint for progress.
    """
    options = upload_service.build_options(extraction_mode, parse_models(models))
    upload_service.check_size(file.size)

    data = await file.read()
    job = await upload_service.start(
        design_week_id=design_week_id,
        filename=file.filename,
        declared_mime_type=file.content_type,
        data=data,
        options=options,
    )
    return create_api_response(
        data=StartUploadResponse(job_id=job.id, status=job.status),
        message="Upload queued for processing",
        request=request,
    )


@router.get(
    "/{job_id}/status",
    response_model=ApiResponse,
    summary="Get upload job progress",
    operation_id="get_upload_status",
)
async def get_upload_status(
    request: Request,
    job_id: UUID,
    upload_service: Annotated[UploadService, Depends(get_upload_service)],
) -> ApiResponse:
    job = await upload_service.get_progress(job_id)
    return create_api_response(
        data=UploadJobSnapshot.model_validate(job),
        message="Upload status retrieved successfully",
        request=request,
    )


@router.post(
    "/{job_id}/cancel",
    response_model=ApiResponse,
    summary="Cancel an upload job",
    operation_id="cancel_upload",
)
async def cancel_upload(
    request: Request,
    job_id: UUID,
    upload_service: Annotated[UploadService, Depends(get_upload_service)],
) -> ApiResponse:
    """Mark the job as cancelled. Finished jobs are left unchanged."""
    result = await upload_service.cancel(job_id)
    return create_api_response(
        data=CancelResponse(message=result.message, status=result.status),
        message=result.message,
        request=request,
    )


@router.post(
    "/{job_id}/retry",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Retry a failed upload job",
    operation_id="retry_upload",
)
async def retry_upload(
    request: Request,
    job_id: UUID,
    upload_service: Annotated[UploadService, Depends(get_upload_service)],
) -> ApiResponse:
    """Queue a new job from the stored artifact of a failed job."""
    job = await upload_service.retry(job_id)
    return create_api_response(
        data=StartUploadResponse(job_id=job.id, status=job.status),
        message="Upload queued for retry",
        request=request,
    )
