"""
main.py: PBL Toolkit FastAPI application

Wires together all components at startup:
- Creates tables, checks session configuration and loads the API-key cipher
- Initializes shared clients (Redis, OpenAI, GitHub connector) on app.state
- Registers middleware, routers and exception handlers

httpx and Redis clients keep connection pools, so one instance per process
is shared across requests and closed on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pbl_toolkit.api import routes_admin, routes_faculty, routes_integrations
from pbl_toolkit.api.routes_auth import router as auth_router
from pbl_toolkit.core.config import get_settings
from pbl_toolkit.core.crypto import get_cipher
from pbl_toolkit.core.exceptions import ConfigurationError, PBLError, ValidationFailed
from pbl_toolkit.db.database import init_db
from pbl_toolkit.integrations.github_connector import GitHubConnector
from pbl_toolkit.integrations.openai_client import OpenAIClient
from pbl_toolkit.integrations.redis_client import RedisClient
from pbl_toolkit.middleware.logging import RequestLoggingMiddleware

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()

APP_VERSION = "1.0.0"


def check_session_config() -> None:
    """Signed-token sessions cannot run without a signing secret."""
    if settings.session_strategy == "jwt" and not settings.session_secret:
        raise ConfigurationError("SESSION_SECRET or JWT_SECRET must be set when SESSION_STRATEGY=jwt")


# ─── Application Lifespan ─────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} backend...")

    check_session_config()
    get_cipher()
    logger.info(f"Session strategy: {settings.session_strategy} | TTL: {settings.session_ttl_hours}h")

    # ── Create tables if they don't exist ──
    await init_db()

    # ── Initialize integrations ──
    redis_client = RedisClient()
    await redis_client.connect()
    if await redis_client.is_connected():
        app.state.redis_client = redis_client
    else:
        logger.warning("Redis unavailable. Counters and rate limits fall back to in-process state.")
        app.state.redis_client = None

    app.state.openai_client = OpenAIClient()
    app.state.github_connector = GitHubConnector()
    if not app.state.github_connector.is_configured:
        logger.info("GitHub connector not configured; repository endpoints will answer 503.")

    logger.info(f"{settings.app_name} startup complete. ENV: {settings.app_env}")

    yield  # ── Application runs ──

    logger.info(f"Shutting down {settings.app_name}...")
    await redis_client.close()
    await app.state.openai_client.close()
    await app.state.github_connector.close()
    logger.info("All connections closed. Shutdown complete.")


# ─── FastAPI Application ───────────────────────────────────────────────────────

app = FastAPI(
    title="PBL Toolkit API",
    description=(
        "Identity and access backend for the project-based learning toolkit: "
        "faculty registration with admin approval, sessions, role-based access "
        "and encrypted third-party API keys."
    ),
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins,
    allow_credentials=not settings.debug,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Request Logging Middleware ────────────────────────────────────────────────
# Reads redis_client from app.state per request, so registering it before
# the lifespan has run is safe.
app.add_middleware(RequestLoggingMiddleware)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(auth_router)
app.include_router(routes_faculty.router)
app.include_router(routes_admin.router)
app.include_router(routes_integrations.router)


# ── Exception Handlers ────────────────────────────────────────────────────────

@app.exception_handler(PBLError)
async def pbl_error_handler(request: Request, exc: PBLError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.detail}")
    content = {"detail": exc.detail}
    if isinstance(exc, ValidationFailed):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Body and query validation failures are a 400 with one entry per field."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": errors})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catches unhandled exceptions and returns a consistent JSON error response.
    Stack traces stay in the log.
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error": str(exc) if settings.debug else None,
        },
    )


# ── Root / Health ─────────────────────────────────────────────────────────────

@app.get("/", tags=["Health"])
async def root():
    return {
        "service": settings.app_name,
        "version": APP_VERSION,
        "status": "operational",
        "environment": settings.app_env,
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
async def health(request: Request):
    """
    Liveness probe. Returns 200 as long as the process is alive; Redis is
    reported but not required.
    """
    redis_client = getattr(request.app.state, "redis_client", None)
    redis_ok = await redis_client.is_connected() if redis_client else False
    return {
        "status": "healthy",
        "redis": "connected" if redis_ok else "disconnected",
        "sessionStrategy": settings.session_strategy,
    }
