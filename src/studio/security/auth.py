from __future__ import annotations

"""Identity gate: password users, signed session tokens, request identification.

This module provides:
- Pydantic model for the authenticated user context
- In-memory user store (PBKDF2-hashed passwords)
- JWT encode/decode helpers for the session cookie
- FastAPI dependencies resolving the current user (optional or required)

Env vars (for production readiness):
- JWT_SECRET (required in prod; default for dev)
- JWT_EXPIRES_MIN (default 10080, one week)
- STUDIO_SESSION_COOKIE (default studio_session)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Dict, Literal, Optional

import hashlib
import hmac
import logging
import os
import secrets
import uuid

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..errors import StudioError


logger = logging.getLogger("studio.auth")
bearer_scheme = HTTPBearer(auto_error=False)

UserType = Literal["guest", "regular"]
_PBKDF2_ROUNDS = 120_000


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val


@dataclass
class JwtConfig:
    secret: str
    algorithm: str = "HS256"
    expires_min: int = 10080

    @staticmethod
    def from_env() -> "JwtConfig":
        secret = _get_env("JWT_SECRET", "dev-secret-change-me")
        expires = int(os.getenv("JWT_EXPIRES_MIN", "10080"))
        return JwtConfig(secret=secret, expires_min=expires)


def session_cookie_name() -> str:
    return os.getenv("STUDIO_SESSION_COOKIE", "studio_session")


class AuthUser(BaseModel):
    id: str
    email: str
    type: UserType


def get_user_type(email: Optional[str]) -> UserType:
    if not email:
        return "guest"
    if email.startswith("guest-"):
        return "guest"
    return "regular"


@dataclass
class _UserRecord:
    id: str
    email: str
    password_hash: str
    created_at: datetime


USERS: Dict[str, _UserRecord] = {}
_users_lock = RLock()


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ROUNDS)
    return f"pbkdf2_sha256${_PBKDF2_ROUNDS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        _algo, rounds, salt_hex, digest_hex = encoded.split("$")
        digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), int(rounds))
    except ValueError:
        return False
    return hmac.compare_digest(digest.hex(), digest_hex)


def _to_user(rec: _UserRecord) -> AuthUser:
    return AuthUser(id=rec.id, email=rec.email, type=get_user_type(rec.email))


def register_user(email: str, password: str) -> AuthUser:
    email_l = email.lower()
    with _users_lock:
        if email_l in USERS:
            raise ValueError("User already registered")
        rec = _UserRecord(
            id=str(uuid.uuid4()),
            email=email_l,
            password_hash=hash_password(password),
            created_at=datetime.now(timezone.utc),
        )
        USERS[email_l] = rec
    logger.info("Registered user %s", email_l)
    return _to_user(rec)


def authenticate(email: str, password: str) -> AuthUser:
    rec = USERS.get(email.lower())
    if rec is None or not verify_password(password, rec.password_hash):
        raise ValueError("Invalid login credentials")
    return _to_user(rec)


def create_session_token(user: AuthUser, cfg: Optional[JwtConfig] = None) -> str:
    cfg = cfg or JwtConfig.from_env()
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=cfg.expires_min)
    payload = {
        "sub": user.id,
        "email": user.email,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)


def decode_token(token: str, cfg: Optional[JwtConfig] = None) -> Optional[AuthUser]:
    """Return the user named by a session token, or None when it is invalid or expired."""
    cfg = cfg or JwtConfig.from_env()
    try:
        data = jwt.decode(token, cfg.secret, algorithms=[cfg.algorithm])
    except jwt.ExpiredSignatureError:
        logger.info("Session token expired")
        return None
    except jwt.InvalidTokenError:
        return None
    email = data.get("email") or ""
    return AuthUser(id=str(data["sub"]), email=email, type=get_user_type(email))


def identify(request: Request, creds: Optional[HTTPAuthorizationCredentials] = None) -> Optional[AuthUser]:
    token: Optional[str] = None
    if creds is not None and creds.scheme and creds.scheme.lower() == "bearer":
        token = creds.credentials
    if not token:
        token = request.cookies.get(session_cookie_name())
    if not token:
        return None
    return decode_token(token)


def get_optional_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[AuthUser]:
    return identify(request, creds)


def require_user(user: Optional[AuthUser] = Depends(get_optional_user)) -> AuthUser:
    if user is None:
        raise StudioError("unauthorized:auth", message="Authentication required")
    return user


def reset_users() -> None:
    """Clear registered users (useful for tests)."""
    with _users_lock:
        USERS.clear()
