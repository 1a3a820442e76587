"""
Health check endpoints.
"""
from fastapi import APIRouter
from sqlalchemy import text

from boardvote.db.base import engine
from boardvote.schemas.common import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(code=200, message="API is healthy.")


@router.get("/health/db", response_model=HealthResponse)
async def database_health_check():
    """Database connectivity check."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return HealthResponse(code=200, message="Database is reachable.", data={"dialect": engine.dialect.name})
