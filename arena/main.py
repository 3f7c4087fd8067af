"""Trading Arena: FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from arena.api import account, admin, competitions
from arena.config import settings
from arena.database import engine
from arena.errors import register_error_handlers
from arena.services.rate_limit import api_rate_limiter, client_ip, close_store

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

VERSION = "0.3.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: verify DB connection. Shutdown: dispose engine."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connected successfully")
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        raise
    yield
    await close_store()
    await engine.dispose()
    logger.info("Database engine disposed")


app = FastAPI(
    title="Trading Arena",
    description="Paper trading competitions with synthetic markets",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s from %s", request.method, request.url.path, client_ip(request))
    return await call_next(request)


register_error_handlers(app)

_api_limit = [Depends(api_rate_limiter)]
app.include_router(account.router, dependencies=_api_limit)
app.include_router(competitions.router, dependencies=_api_limit)
app.include_router(admin.router, dependencies=_api_limit)


@app.get("/health")
async def health():
    return {"status": "ok", "env": settings.app_env, "version": VERSION}
