"""
api/routes/auth.py -- Registration and login endpoints.

Routes:
  POST /api/auth/register   -- create an account; returns a bearer token
  POST /api/auth/login      -- email/password login; returns a bearer token

Both are public (the /api/auth/** rule). The client keeps the token and sends
it back as "Authorization: Bearer <token>"; nothing is stored server-side.

Security:
  POST /login and /register are rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Wrong email and wrong password return the same error.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password, token_expires_in

logger = logging.getLogger("movieflix.api")

router = APIRouter()


def _token_response(user: User, status_code: int) -> JSONResponse:
    token = create_access_token(user.id, user.email)
    resp = JSONResponse(
        status_code=status_code,
        content=TokenResponse(
            token=token,
            expires_in=token_expires_in(),
            user=UserResponse.from_user(user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# @limiter.limit goes BELOW @router: SlowAPIMiddleware only applies global
# limits, so per-route limits are enforced by the wrapper the router calls.
@router.post("/auth/register", response_model=TokenResponse, status_code=201)
@limiter.limit(login_rate_limit)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account with a bcrypt-hashed password and log it in."""
    user_store: UserStore = request.app.state.user_store
    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        display_name=body.display_name,
    )
    try:
        uid = user_store.create_user(user)
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail={"code": "email_taken", "message": "An account with this email already exists."},
        )

    created = user_store.get_by_id(uid)
    logger.info("Registered user_id=%d", uid)
    return _token_response(created, status_code=201)


@router.post("/auth/login", response_model=TokenResponse)
@limiter.limit(login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token."""
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    return _token_response(user, status_code=200)
