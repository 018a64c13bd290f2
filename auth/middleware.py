"""
auth/middleware.py -- Stateless security chain run in front of every route.

The chain is a named, ordered list of steps. Each step receives the request
and either returns None (pass through, possibly after annotating
request.state) or returns a Response, which short-circuits the chain and the
route handler.

Default chain:
  1. bearer_token   -- reads "Authorization: Bearer <token>"; a valid token
                       for an active user sets request.state.principal.
                       Never rejects: a bad token just leaves the caller
                       anonymous (request.state.auth_error records why).
  2. access_policy  -- asks AccessPolicy whether the route needs an identity;
                       anonymous callers on protected routes get 401.

Nothing is read from or written to a session. Identity is re-established from
the token on every request. Steps are plain functions; the chain runs them in
Starlette's threadpool because the bearer step does a blocking user lookup.

get_current_principal() is the FastAPI dependency for handlers that need the
caller's identity. It relies on the chain having run.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from auth.models import Principal
from auth.policy import AccessPolicy
from auth.tokens import decode_access_token

logger = logging.getLogger("movieflix.auth")

SecurityStep = Callable[[Request], Response | None]

_BEARER_PREFIX = "bearer "


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    if header[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


def _unauthorized(code: str, message: str) -> JSONResponse:
    www_auth = 'Bearer error="invalid_token"' if code == "invalid_token" else "Bearer"
    return JSONResponse(
        status_code=401,
        content={"error": {"code": code, "message": message}},
        headers={"WWW-Authenticate": www_auth},
    )


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def authenticate_bearer(request: Request) -> None:
    """Attach a Principal when the request carries a valid bearer token."""
    request.state.principal = None
    request.state.auth_error = None

    token = _bearer_token(request)
    if token is None:
        return None

    payload = decode_access_token(token)
    if payload is None:
        request.state.auth_error = "invalid_token"
        return None

    user_store = request.app.state.user_store
    user = user_store.get_by_id(payload["user_id"])
    if user is None or not user.is_active:
        logger.debug("Token for user_id=%s refers to a missing or disabled account", payload["user_id"])
        request.state.auth_error = "invalid_token"
        return None

    request.state.principal = Principal(user_id=user.id, email=user.email)
    return None


def access_policy_step(policy: AccessPolicy) -> SecurityStep:
    """Build the step that enforces policy against the caller annotated so far."""

    def enforce_access(request: Request) -> Response | None:
        principal = getattr(request.state, "principal", None)
        method = request.method
        path = request.url.path
        if policy.is_permitted(method, path, authenticated=principal is not None):
            return None

        logger.info("Denied %s %s (anonymous caller on protected route)", method, path)
        if getattr(request.state, "auth_error", None) == "invalid_token":
            return _unauthorized("invalid_token", "Bearer token is invalid or expired.")
        return _unauthorized("unauthorized", "Authentication required.")

    return enforce_access


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


class SecurityChain:
    """Ordered security steps, mounted with app.middleware("http").

    Usage:
        chain = SecurityChain.default(AccessPolicy())
        app.middleware("http")(chain)
    """

    def __init__(self, steps: Sequence[tuple[str, SecurityStep]]) -> None:
        self.steps: tuple[tuple[str, SecurityStep], ...] = tuple(steps)

    @classmethod
    def default(cls, policy: AccessPolicy) -> SecurityChain:
        return cls(
            [
                ("bearer_token", authenticate_bearer),
                ("access_policy", access_policy_step(policy)),
            ]
        )

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.steps]

    def run(self, request: Request) -> Response | None:
        """Run every step in order; return the first short-circuit response."""
        for name, step in self.steps:
            response = step(request)
            if response is not None:
                logger.debug("Security step %r rejected %s %s", name, request.method, request.url.path)
                return response
        return None

    async def __call__(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        # Steps are sync and may hit the user store; keep them off the event loop.
        response = await run_in_threadpool(self.run, request)
        if response is not None:
            return response
        return await call_next(request)


# ---------------------------------------------------------------------------
# Route dependency
# ---------------------------------------------------------------------------


def get_current_principal(request: Request) -> Principal:
    """Require an authenticated caller. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/user/me")
        async def me(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal
