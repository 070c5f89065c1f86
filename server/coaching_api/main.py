"""Nutrition Coaching API - FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nutrition_targets import NutritionEngineError

from .config import get_settings
from .database import get_services
from .routes import notifications, rules, targets

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = get_services().scheduler
        scheduler.start_scheduler(settings.scheduler_interval_minutes)
    yield
    if scheduler is not None:
        scheduler.stop_scheduler()


app = FastAPI(
    title="Nutrition Coaching API",
    description="Nutrition targets and auto-adjustment rules for coached clients",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NutritionEngineError)
async def engine_error_handler(request: Request, exc: NutritionEngineError):
    """Map engine errors to their HTTP status with a structured body."""
    if exc.status_code >= 500:
        log.error(f"[API] {request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(targets.router)
app.include_router(rules.router)
app.include_router(notifications.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for the API."""
    return {"status": "healthy", "service": "coaching-api"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "server.coaching_api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
    )
