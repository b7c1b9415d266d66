"""FastAPI application entry point."""

from __future__ import annotations

import sys
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

# Ensure server/ is on sys.path for absolute imports
_server_dir = str(Path(__file__).resolve().parent)
if _server_dir not in sys.path:  # pragma: no cover
    sys.path.insert(0, _server_dir)

try:
    __version__ = (Path(__file__).resolve().parent.parent / "VERSION").read_text().strip()
except OSError:  # pragma: no cover
    __version__ = "0.0.0-dev"

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

import models  # noqa: F401  registers every table on Base.metadata
from api import api_router
from config import settings
from database import Base, engine
from logging_config import bind_request


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure unified logging before anything else
    from logging_config import setup_logging
    setup_logging("Server")

    import logging
    logger = logging.getLogger(__name__)

    # Startup: create tables if they don't exist (dev convenience; use alembic in prod)
    Base.metadata.create_all(bind=engine)

    try:
        from database import SessionLocal
        from services.seed import seed_defaults
        with SessionLocal() as session:
            seed_defaults(session)
    except Exception:
        logger.exception("Failed to seed default data on startup")

    yield


app = FastAPI(title="AI Chat Platform API", version=__version__, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.CORS_ALLOW_ALL_ORIGINS else [settings.FRONTEND_URL],
    allow_credentials=not settings.CORS_ALLOW_ALL_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    with bind_request(request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health")
def health():
    return {"status": "OK", "version": __version__}


# API routes
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG, log_config=None)
