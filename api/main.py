"""
api/main.py -- FastAPI application factory for the marketplace auth service.

Run with:      uvicorn asgi:app --reload

create_app(settings) builds every component once from one Settings object
and passes values by reference:

  Settings --> CredentialStore(rounds, workers)
           --> UserStore(database_url)
           --> TokenService(secret_key, ttl, store)
           --> AccessControl(tokens, store)
           --> RateLimiter(limits per route class, storage uri)
           --> AccountService(store, credentials, tokens)

Per-request order for a protected route:
  RateLimit(general) router dependency -> [RateLimit(login|register)]
  -> get_current_identity -> RequireRoles -> handler

Middleware stack (outermost to innermost; Starlette puts the most recently
registered middleware outermost):
  1. log_requests          -- logs method, path, status, latency, client per
                              request and adds RateLimit-* headers
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan handles startup (stores and pools) and shutdown (close them)
symmetrically. Tests build a fresh app per test from their own Settings.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.limiter import RateLimit, RateLimiter, RouteClass, rate_limit_headers
from api.models import HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from auth.access import AccessControl
from auth.accounts import AccountService
from auth.credentials import CredentialStore
from auth.errors import AuthError, RateLimited
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("marketplace.api")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def wire_components(app: FastAPI, settings: Settings, store: UserStore, credentials: CredentialStore) -> None:
    """Attach the auth components to app.state, built from explicit settings."""
    tokens = TokenService(settings.secret_key, settings.token_ttl_seconds, store)
    app.state.settings = settings
    app.state.user_store = store
    app.state.credentials = credentials
    app.state.tokens = tokens
    app.state.access = AccessControl(tokens, store)
    app.state.accounts = AccountService(store, credentials, tokens)
    app.state.rate_limiter = RateLimiter(
        {
            RouteClass.general: settings.general_rate_limit,
            RouteClass.login: settings.login_rate_limit,
            RouteClass.register: settings.register_rate_limit,
        },
        storage_uri=settings.rate_limit_storage_uri,
    )


def _lifespan_for(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build stores and pools on startup; close them on shutdown."""
        logger.info("Marketplace auth API starting up")
        store = UserStore(settings.database_url)
        credentials = CredentialStore(rounds=settings.bcrypt_rounds, workers=settings.hash_workers)
        wire_components(app, settings, store, credentials)
        logger.info("Auth initialized (token_ttl=%ds)", settings.token_ttl_seconds)

        yield

        credentials.close()
        store.close()
        logger.info("Marketplace auth API shutdown complete")

    return lifespan


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body is {"message": ...}. Auth denials keep their stable client
# message; internal reasons (e.g. ExpiredToken vs MalformedToken) only reach
# the log.
# ---------------------------------------------------------------------------


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    response = JSONResponse(status_code=exc.status_code, content={"message": exc.message})
    if isinstance(exc, RateLimited):
        response.headers.update(rate_limit_headers(exc.limit, 0, exc.reset_at))
        response.headers["Retry-After"] = str(exc.retry_after)
        response.headers["X-RateLimit-Reset"] = str(int(exc.reset_at))
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body or path params fail validation."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "invalid request"))
    return JSONResponse(status_code=422, content={"message": f"Validation error ({detail})"})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected failures (storage unreachable, hashing failure).

    The traceback goes to the log only. The client gets a generic message so
    no internal detail leaks.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings) -> FastAPI:
    app = FastAPI(
        title="Marketplace Auth API",
        description="Token issuance, revocation, role-gated access and rate limiting for the marketplace.",
        version=__version__,
        lifespan=_lifespan_for(settings),
    )

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        status = getattr(request.state, "rate_limit", None)
        # 429s already carry headers built from the error itself.
        if status is not None and "ratelimit-limit" not in response.headers:
            response.headers.update(rate_limit_headers(status.limit, status.remaining, status.reset_at))
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    # The general limit gates every versioned route except health.
    general_limit = [Depends(RateLimit(RouteClass.general))]
    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"], dependencies=general_limit)
    app.include_router(admin_router, prefix="/api/v1", tags=["Admin"], dependencies=general_limit)

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/api/v1/health", tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Liveness plus a database round trip. Never rate limited."""
        try:
            request.app.state.user_store.ping()
            database = "ok"
        except Exception:
            logger.exception("Health check: database unreachable")
            database = "error"
        return HealthResponse(
            status="healthy" if database == "ok" else "degraded",
            version=__version__,
            components={"app": "ok", "database": database},
        )

    return app
