"""Main FastAPI application for the diagnostic dialogue API.

Provides:
- Health check endpoint
- Chat turn and conversation reset endpoints
- VIN decode / validate tools
"""

from datetime import datetime, timezone
from typing import Dict

import structlog
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from app.config import settings
from app.deps import get_service
from diag_dialogue.logging_setup import configure_logging

configure_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Turn-by-turn diagnostic dialogue for automotive technicians",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    services: Dict[str, str]


@app.on_event("startup")
async def startup_event() -> None:
    """Start the VIN client and the session sweep loop."""
    service = get_service()
    await service.start()
    logger.info(
        "api_starting",
        app=settings.app_name,
        version=settings.app_version,
        use_llm=service.settings.use_llm,
        llm_base_url=service.settings.llm_base_url if service.settings.use_llm else None,
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await get_service().close()
    logger.info("api_shutdown", app=settings.app_name)


@app.get("/", tags=["Root"])
async def root() -> Dict[str, str]:
    return {
        "message": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    status_code=status.HTTP_200_OK,
)
async def health_check() -> HealthResponse:
    """Health status of the API and its in-process dependencies."""
    service = get_service()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        services={
            "api": "healthy",
            "sessions": str(service.store.size()),
            "phrasing": "llm" if service.settings.use_llm else "template",
        },
    )


from app.api.v1.endpoints import chat, vehicle  # noqa: E402

# Include routers
app.include_router(chat.router, prefix="/v1/chat", tags=["Chat"])
app.include_router(vehicle.router, prefix="/v1/vehicle", tags=["Vehicle"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
    )
