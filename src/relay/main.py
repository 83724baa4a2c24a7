"""Main FastAPI application for the chat relay."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from . import __version__
from .config import PROJECT_ROOT, Settings
from .errors import RelayError, UpstreamRejected
from .gateway import DIAGNOSTIC_HEADERS, UpstreamGateway
from .logging_config import configure_logging
from .routers import aipipe_router, chat_router, health_router, search_router

logger = logging.getLogger(__name__)

# First path segments the SPA fallback must never shadow.
RESERVED_SEGMENTS = frozenset({"api", "docs", "redoc", "openapi.json"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings

    # Startup - skip if in test mode
    if "pytest" not in sys.modules:
        log_file = configure_logging(
            settings.log_dir,
            settings.log_max_bytes,
            settings.log_retention_days,
            settings.debug,
            settings.uvicorn_log_level,
        )
        logger.info("Logging to %s", log_file)
        if not settings.groq_api_key:
            logger.warning("GROQ_API_KEY is not set. /api/chat will fail until you add it.")
        if not settings.aipipe_url:
            logger.info("AIPIPE_URL is not set. /api/aipipe answers with the offline simulation.")
        logger.info("Relay ready!")

    yield

    # Shutdown - close the outbound connection pool
    try:
        await app.state.gateway.close()
    except Exception:
        logger.exception("Error while closing upstream gateway")


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render relay errors; upstream rejections pass through verbatim."""
    if isinstance(exc, UpstreamRejected):
        logger.warning(
            "%s %s: upstream answered HTTP %s",
            request.method,
            request.url.path,
            exc.status_code,
        )
    else:
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"error": {"message": str(exc) or "Relay request failed"}},
        status_code=500,
    )


def _mount_frontend(app: FastAPI, static_dir: Path) -> None:
    """Serve the browser UI and fall back to index.html for client routes."""
    root = static_dir.resolve()
    index_file = root / "index.html"

    @app.get("/{full_path:path}", include_in_schema=False)
    async def serve_spa(full_path: str):
        # Allow API calls to pass through (if they weren't caught by routers above)
        if full_path.split("/", 1)[0] in RESERVED_SEGMENTS:
            raise HTTPException(status_code=404)

        candidate = (root / full_path).resolve()
        if full_path and candidate.is_file() and root in candidate.parents:
            return FileResponse(candidate)
        if index_file.is_file():
            return FileResponse(index_file)
        raise HTTPException(status_code=404)


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[UpstreamGateway] = None,
) -> FastAPI:
    """Build the relay application.

    Args:
        settings: Configuration; read from the environment when omitted.
        gateway: Upstream gateway; built from ``settings`` when omitted.

    Returns:
        The configured FastAPI app.
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Chat Relay",
        description="Stateless relay between a browser chat UI and LLM providers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = gateway or UpstreamGateway(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=list(DIAGNOSTIC_HEADERS),
    )

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(search_router)
    app.include_router(aipipe_router)

    # Must be registered LAST to avoid shadowing the API routes
    if settings.static_dir.is_dir():
        _mount_frontend(app, settings.static_dir)

    return app


# Load .env into os.environ before the default settings are read.
load_dotenv(PROJECT_ROOT / ".env", override=False)

app = create_app()


def main():
    """Run the server."""
    settings: Settings = app.state.settings
    print(f"LLM relay on http://localhost:{settings.port}")
    reload_dirs = [str(PROJECT_ROOT / "src")] if settings.debug else None
    uvicorn.run(
        "relay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=reload_dirs,
    )


if __name__ == "__main__":
    main()
