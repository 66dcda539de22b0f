"""Response envelope and error detail shared by every endpoint."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    """Metadata attached to every API response."""

    timestamp: datetime = Field(..., description="Server time the response was built")
    request_id: str = Field(..., description="Correlation id for the request")
    api_version: str = Field(default="v1", description="API version that served the request")


class ApiResponse(BaseModel):
    """Standard success envelope."""

    status: bool = Field(..., description="True when the operation succeeded")
    message: str = Field(..., description="Human readable outcome")
    data: dict[str, Any] = Field(default_factory=dict, description="Operation payload")
    meta: Optional[ResponseMeta] = Field(default=None, description="Response metadata")


class ErrorDetail(BaseModel):
    """Problem details body (RFC 7807)."""

    title: str = Field(..., description="Short error summary")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Redacted, length-capped error message")
    instance: Optional[str] = Field(default=None, description="Request path")
    request_id: Optional[str] = Field(default=None, description="Correlation id for the request")
    timestamp: datetime = Field(..., description="Server time the error was built")
