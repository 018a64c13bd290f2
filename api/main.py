"""
api/main.py -- FastAPI application factory for the MovieFlix gateway.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- answers preflights, adds CORS headers for allowed origins
  2. log_requests       -- one log line per request, including rejected ones
  3. SecurityChain      -- bearer token -> access policy (stateless, no sessions)
  4. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Starlette makes the LAST registered middleware the outermost one, so they are
registered below in reverse of the order above.

Starlette sends the app-level Exception handler to ServerErrorMiddleware,
which sits outside CORSMiddleware. log_requests therefore renders unexpected
errors itself so 500 responses still carry CORS headers.

create_app() takes the Settings explicitly. The CORS and access policies are
built from it once and never change for the life of the process.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.user import router as user_router
from auth.cors import CorsPolicy
from auth.middleware import SecurityChain
from auth.policy import AccessPolicy
from auth.store import DEFAULT_DB_URL, UserStore
from core.config import APP_VERSION, Settings, get_settings

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("movieflix.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def _lifespan_for(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the user store on startup and dispose of it on shutdown."""
        logger.info("MovieFlix gateway starting up")
        app.state.user_store = UserStore(db_url=settings.auth_db_url or DEFAULT_DB_URL)
        logger.info("User store initialized")

        yield

        app.state.user_store.close()
        logger.info("MovieFlix gateway shutdown complete")

    return lifespan


# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    """Log one line per request.

    Unhandled errors are turned into the 500 envelope here, inside
    CORSMiddleware, so browser clients can read them cross-origin.
    """
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:
        response = await generic_exception_handler(request, exc)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After is the length of the exceeded limit's window in seconds.
    """
    retry_after = exc.limit.limit.get_expiry() if exc.limit is not None else 60
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a dict detail. When detail is
    already structured, use it directly as the error field.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=headers,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Public endpoints defined on the app itself
# ---------------------------------------------------------------------------


async def root() -> dict:
    """Service banner."""
    return {"service": "MovieFlix API", "version": APP_VERSION}


async def health() -> HealthResponse:
    """Return API liveness and current version. Never rate limited."""
    return HealthResponse(version=APP_VERSION)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    access_policy: AccessPolicy | None = None,
) -> FastAPI:
    """Assemble the application from explicit configuration."""
    settings = settings or get_settings()
    access_policy = access_policy or AccessPolicy()
    cors_policy = CorsPolicy.from_settings(settings)
    security_chain = SecurityChain.default(access_policy)

    app = FastAPI(
        title="MovieFlix API",
        description="Authentication, access control and CORS gateway for the MovieFlix backend.",
        version=APP_VERSION,
        lifespan=_lifespan_for(settings),
    )
    app.state.settings = settings
    app.state.access_policy = access_policy
    app.state.cors_policy = cors_policy
    app.state.security_chain = security_chain
    # SlowAPI looks for app.state.limiter by convention.
    app.state.limiter = limiter

    # Innermost first -- see module docstring.
    app.add_middleware(SlowAPIMiddleware)
    app.middleware("http")(security_chain)
    app.middleware("http")(log_requests)
    app.add_middleware(CORSMiddleware, **cors_policy.middleware_options())

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_api_route("/", root, methods=["GET"], include_in_schema=False)
    app.add_api_route("/api/health", health, methods=["GET"], tags=["Health"], response_model=HealthResponse)
    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(user_router, prefix="/api", tags=["User"])

    logger.info("Security chain: %s", " -> ".join(security_chain.names))
    return app
