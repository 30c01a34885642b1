"""
Response schemas for HTTP endpoints.

All endpoints answer with a ``success`` flag. Errors carry the
human-readable message in ``error`` and a machine-readable ``code``.
"""

from typing import Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response with error details."""

    success: bool = Field(False, description="Always false for error responses")
    error: str = Field(..., description="Error message")
    code: Optional[str] = Field(
        None,
        description="Error code",
        examples=["STORE_ERROR", "VALIDATION_ERROR"]
    )
