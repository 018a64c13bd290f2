"""
api/routes/user.py -- Endpoints about the calling user.

Routes:
  GET /api/user/me   -- profile of the bearer-token holder

Protected by the /api/user/** rule; the security chain has already rejected
anonymous callers by the time a handler runs. get_current_principal() is
still declared so the handler cannot run without an identity.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import UserResponse
from auth.middleware import get_current_principal
from auth.models import Principal
from auth.store import UserStore

router = APIRouter()


@router.get("/user/me", response_model=UserResponse)
def me(request: Request, principal: Principal = Depends(get_current_principal)) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(principal.user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return UserResponse.from_user(user)
