"""
API Gateway application.

FastAPI app exposing script generation and provider diagnostics.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config import settings
from shared.logging import get_logger
from api_gateway.dependencies import close_provider_gateway
from api_gateway.routes import providers, scripts

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    yield
    await close_provider_gateway()
    logger.info("API gateway shut down")


app = FastAPI(
    title="ScriptForge API",
    description="Resilient multi-provider scene-script generation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(scripts.router, prefix="/api/v1", tags=["scripts"])
app.include_router(providers.router, prefix="/api/v1", tags=["providers"])


@app.get("/health")
async def health_check():
    """Liveness probe."""
    return {"status": "healthy", "environment": settings.environment}


logger.info("API gateway initialized", extra={"environment": settings.environment})
