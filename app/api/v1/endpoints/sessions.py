"""Session endpoints: synchronous transcript extraction and item listing."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.dependencies import get_transcript_extraction_service
from app.schemas.common import ApiResponse
from app.schemas.uploads import (
    ExtractedItemResponse,
    ExtractionUsage,
    TranscriptExtractRequest,
    TranscriptExtractResponse,
)
from app.services.transcript_extraction_service import TranscriptExtractionService
from app.utils.responses import create_api_response

router = APIRouter()


@router.post(
    "/{session_id}/extract",
    response_model=ApiResponse,
    summary="Extract items from a transcript",
    operation_id="extract_session_transcript",
)
async def extract_transcript(
    request: Request,
    session_id: UUID,
    body: TranscriptExtractRequest,
    extraction_service: Annotated[TranscriptExtractionService, Depends(get_transcript_extraction_service)],
) -> ApiResponse:
    """Extract items from the transcript and replace the session's items with them."""
    result = await extraction_service.extract(session_id, body.transcript, body.session_type)
    payload = TranscriptExtractResponse(
        item_count=len(result.items),
        items=[ExtractedItemResponse.model_validate(item) for item in result.items],
        usage=ExtractionUsage(
            input_tokens=result.usage.input_tokens,
            output_tokens=result.usage.output_tokens,
            latency_ms=result.latency_ms,
        ),
        warnings=result.warnings,
    )
    return create_api_response(
        data=payload,
        message=f"Extracted {payload.item_count} items",
        request=request,
    )


@router.get(
    "/{session_id}/items",
    response_model=ApiResponse,
    summary="List extracted items of a session",
    operation_id="list_session_items",
)
async def list_session_items(
    request: Request,
    session_id: UUID,
    extraction_service: Annotated[TranscriptExtractionService, Depends(get_transcript_extraction_service)],
) -> ApiResponse:
    items = await extraction_service.list_items(session_id)
    return create_api_response(
        data=[ExtractedItemResponse.model_validate(item) for item in items],
        message="Items retrieved successfully",
        request=request,
    )
