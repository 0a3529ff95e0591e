"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.services import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings.require_credentials:
        settings.check_credentials()

    services = build_services(settings)
    await services.open()
    app.state.services = services
    logger.info(
        "[startup] storage=%s quota=%d units/day, %d searches/session",
        settings.storage_backend,
        settings.youtube_daily_quota,
        settings.youtube_max_searches_per_session,
    )
    yield
    await services.close()
    app.state.services = None
    logger.info("[shutdown] services closed")


app = FastAPI(
    title="TuneBridge",
    version="0.1.0",
    lifespan=lifespan,
)

# Browser frontends on another origin call the API directly.
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are client errors (400), not 422."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"detail": f"{where}: {message}" if where else message},
    )


# Routers
from app.routes_playlist import router as playlist_router  # noqa: E402

app.include_router(playlist_router)


@app.get("/health")
async def health():
    """Simple health-check endpoint."""
    return JSONResponse({"status": "ok", "version": app.version})
