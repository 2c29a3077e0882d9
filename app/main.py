"""Main FastAPI application for the Gamification Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog
from prometheus_fastapi_instrumentator import Instrumentator

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.database import init_db, AsyncSessionLocal
from app.core.dependencies import build_cache, build_content_generator
from app.core.errors import register_error_handlers
from app.routers import challenges, gamification

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle manager."""
    logger.info("Starting Campus Gamification Service", version=settings.APP_VERSION)

    await init_db()

    app.state.cache = await build_cache()
    app.state.content_generator = build_content_generator()
    if not app.state.content_generator.enabled:
        logger.warning("GEMINI_API_KEY not set; content generation disabled")

    logger.info("Gamification service initialized successfully")

    yield

    logger.info("Shutting down Campus Gamification Service")
    await app.state.content_generator.aclose()


app = FastAPI(
    title="Campus Gamification Service",
    description="Challenges, points, achievements and leaderboards for campus events",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production() else None,
    redoc_url="/redoc" if not settings.is_production() else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

if settings.ENABLE_METRICS:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")

app.include_router(challenges.router, prefix="/api/challenges", tags=["challenges"])
app.include_router(gamification.router, prefix="/api/gamification", tags=["gamification"])


@app.get("/", tags=["root"])
async def root():
    """Root endpoint."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "status": "operational"
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Health check endpoint."""
    health_status = {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "version": settings.APP_VERSION,
        "checks": {}
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    try:
        if hasattr(request.app.state, "cache"):
            await request.app.state.cache.exists("health_check")
            health_status["checks"]["cache"] = "healthy"
    except Exception as e:
        logger.warning("Cache health check failed", error=str(e))
        health_status["checks"]["cache"] = "unhealthy"
        health_status["status"] = "degraded"

    generator = getattr(request.app.state, "content_generator", None)
    health_status["checks"]["content_generation"] = (
        "enabled" if generator is not None and generator.enabled else "disabled"
    )

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=settings.ENVIRONMENT == "development",
        log_config=None  # Use structlog instead
    )
