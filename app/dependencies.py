"""Centralized dependency injection for FastAPI application.

Services are built once in the application lifespan and kept on
``app.state``; these factories hand them to the endpoints. Tests replace
them through ``app.dependency_overrides``.
"""

from fastapi import Request

from app.core.exceptions import ConfigurationError
from app.services.transcript_extraction_service import TranscriptExtractionService
from app.services.upload_service import UploadService


def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise ConfigurationError(f"{name} is not initialized")
    return service


async def get_upload_service(request: Request) -> UploadService:
    """Get upload service instance.

    Returns:
        UploadService: Start, status, cancel and retry operations
    """
    return _from_state(request, "upload_service")


async def get_transcript_extraction_service(request: Request) -> TranscriptExtractionService:
    """Get transcript extraction service instance.

    Returns:
        TranscriptExtractionService: Synchronous transcript extraction
    """
    return _from_state(request, "transcript_extraction_service")
