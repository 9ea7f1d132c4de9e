from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from ...domain.chat_models import AuthResult, SignInRequest, SignUpRequest
from ...errors import StudioError
from ...infrastructure.ownership_store import OwnershipStore, get_ownership_store
from ...security.auth import (
    AuthUser,
    JwtConfig,
    authenticate,
    create_session_token,
    register_user,
    require_user,
    session_cookie_name,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_cookie(response: Response, user: AuthUser) -> None:
    cfg = JwtConfig.from_env()
    response.set_cookie(
        session_cookie_name(),
        create_session_token(user, cfg),
        max_age=cfg.expires_min * 60,
        httponly=True,
        samesite="lax",
        path="/",
    )


@router.post("/signin", response_model=AuthResult)
async def sign_in(
    req: SignInRequest,
    response: Response,
    store: OwnershipStore = Depends(get_ownership_store),
) -> AuthResult:
    try:
        user = authenticate(req.email, req.password)
    except ValueError as exc:
        raise StudioError("bad_request:auth", message=str(exc))
    await store.ensure_user(user.id, user.email)
    _set_session_cookie(response, user)
    return AuthResult(message="Signed in successfully")


@router.post("/signup", response_model=AuthResult)
async def sign_up(
    req: SignUpRequest,
    response: Response,
    store: OwnershipStore = Depends(get_ownership_store),
) -> AuthResult:
    try:
        user = register_user(req.email, req.password)
    except ValueError as exc:
        raise StudioError("bad_request:auth", message=str(exc))
    await store.ensure_user(user.id, user.email)
    _set_session_cookie(response, user)
    return AuthResult(message="Signed up successfully")


@router.post("/signout", response_model=AuthResult)
def sign_out(response: Response, user: AuthUser = Depends(require_user)) -> AuthResult:
    response.delete_cookie(session_cookie_name(), path="/")
    return AuthResult(message="Signed out successfully")


@router.get("/me", response_model=AuthUser)
def me(user: AuthUser = Depends(require_user)) -> AuthUser:
    return user
