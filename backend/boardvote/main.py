"""
Board Vote FastAPI Application - Main entry point.

Voting engine for board governance: votes are created against agendas,
agenda items, minutes, action items or resolutions, configured, opened
against a frozen voter roster, cast, closed and tallied, with an
append-only audit trail.

- /api/v1/votes/* - vote lifecycle, results and audit log
- /api/v1/entities/{type}/{id}/votes, /api/v1/meetings/{id}/votes - lookups
- /api/health - Health check
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from boardvote.core.config import settings
from boardvote.core.logging import configure_logging
from boardvote.db.base import init_db
from boardvote.api.v1 import health, votes
from boardvote.schemas.common import ErrorResponse
from boardvote.services.exceptions import VotingError, VoteNotOpen

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    configure_logging()
    # Note: In production, use Alembic migrations instead
    await init_db()
    logger.info(f"{settings.APP_NAME} started ({settings.APP_ENV})")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="""
Board Vote - voting and polling engine for board governance.

## Lifecycle

`draft -> configured -> open -> closed -> archived`, with `reopen` (reason
required) from closed back to open.

Organizer operations require one of the vote manager roles.
    """,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ROUTERS
# ============================================================================

app.include_router(health.router, prefix="/api", tags=["health"])

app.include_router(votes.router, prefix=settings.API_V1_PREFIX, tags=["votes"])


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(VotingError)
async def voting_error_handler(request: Request, exc: VotingError):
    """Lifecycle errors carry their own code and HTTP status."""
    body = ErrorResponse(error=exc.code, detail=exc.message)
    if isinstance(exc, VoteNotOpen) and exc.current_status is not None:
        body.current_status = exc.current_status.value
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "boardvote.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
