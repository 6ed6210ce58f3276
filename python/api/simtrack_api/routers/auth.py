from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..auth_utils import verify_password
from ..repository import TrackerRepository, get_repository
from ..schemas import LoginRequest, MessageResponse, UserEnvelope, UserOut
from ..sessions import CurrentUser, SessionStore, get_session_store
from ..settings import settings

router = APIRouter()
logger = logging.getLogger("simtrack.api.auth")

# Simple in-memory login rate limiter: 5 attempts/minute per client IP.
_RATE_LIMIT_WINDOW_SECONDS = 60
_RATE_LIMIT_MAX_ATTEMPTS = 5
_rate_limit_buckets: dict[tuple[str, str], list[float]] = {}


def _enforce_rate_limit(request: Request, endpoint: str) -> None:
    client_ip = request.client.host if request.client else "unknown"
    now = time.time()
    key = (endpoint, client_ip)
    attempts = [t for t in _rate_limit_buckets.get(key, []) if now - t < _RATE_LIMIT_WINDOW_SECONDS]

    if len(attempts) >= _RATE_LIMIT_MAX_ATTEMPTS:
        retry_after = int(_RATE_LIMIT_WINDOW_SECONDS - (now - attempts[0]))
        raise HTTPException(
            status_code=429,
            detail="Too many login attempts. Please try again shortly.",
            headers={"Retry-After": str(max(1, retry_after))},
        )

    attempts.append(now)
    _rate_limit_buckets[key] = attempts


def reset_rate_limits() -> None:
    _rate_limit_buckets.clear()


def get_current_user(
    request: Request,
    store: SessionStore = Depends(get_session_store),
) -> CurrentUser:
    user = store.get(request.cookies.get(settings.session_cookie_name))
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


@router.post("/auth/login", response_model=UserEnvelope)
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    repo: TrackerRepository = Depends(get_repository),
    store: SessionStore = Depends(get_session_store),
):
    _enforce_rate_limit(request, "login")

    user = repo.get_user_by_username(body.username)
    if user is None or not verify_password(body.password, user.password_hash):
        logger.info(
            "Login rejected",
            extra={"event": "auth.login_failed", "username": body.username},
        )
        raise HTTPException(status_code=401, detail="Invalid credentials")

    identity = CurrentUser(id=user.id, username=user.username)
    token = store.create(identity)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )

    logger.info("Login succeeded", extra={"event": "auth.login", "user_id": user.id})
    return UserEnvelope(user=UserOut(id=user.id, username=user.username))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    store: SessionStore = Depends(get_session_store),
):
    store.revoke(request.cookies.get(settings.session_cookie_name))
    response.delete_cookie(settings.session_cookie_name)
    return MessageResponse(message="Logged out successfully")


@router.get("/auth/me", response_model=UserEnvelope)
def me(user: CurrentUser = Depends(get_current_user)):
    return UserEnvelope(user=UserOut(id=user.id, username=user.username))
