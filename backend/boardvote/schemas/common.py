"""
Common schemas used across the API.
"""
from typing import Optional
from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Health check response."""
    code: int = 200
    message: str = "API is healthy."
    data: dict = {}


class ErrorResponse(BaseModel):
    """Error response body for voting errors."""
    error: str
    detail: str
    current_status: Optional[str] = None
