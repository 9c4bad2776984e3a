"""
Session tokens, password/PIN hashing and the current-user dependency.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import jwt
from argon2 import PasswordHasher
from argon2 import exceptions as argon2_exceptions
from fastapi import Depends, HTTPException, Request, Response

from chorepulse.config import Settings, get_settings
from chorepulse.db import DbClient, UserRecord
from chorepulse.dependencies import get_db_client

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

_hasher = PasswordHasher()


def hash_secret(secret: str) -> str:
    return _hasher.hash(secret)


def verify_secret(stored: Optional[str], secret: str) -> bool:
    if not stored or not stored.startswith("$argon2"):
        return False
    try:
        return _hasher.verify(stored, secret)
    except argon2_exceptions.VerifyMismatchError:
        return False
    except argon2_exceptions.InvalidHashError:
        logger.warning("Stored hash could not be parsed")
        return False


def upgrade_hash(db: DbClient, user: UserRecord, field_name: str, secret: str) -> None:
    """Re-hash a verified secret when the hasher parameters have changed."""
    stored = getattr(user, field_name)
    if stored and _hasher.check_needs_rehash(stored):
        db.update(UserRecord, user.id, **{field_name: hash_secret(secret)})


def issue_token(user: UserRecord, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    issued = int(time.time())
    payload = {
        "sub": user.id,
        "org": user.organization_id,
        "iat": issued,
        "exp": issued + settings.session_ttl_seconds,
    }
    return jwt.encode(payload, settings.session_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, settings: Optional[Settings] = None) -> Optional[dict]:
    settings = settings or get_settings()
    try:
        return jwt.decode(token, settings.session_secret, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        samesite="lax",
        secure=not settings.is_development,
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(get_settings().session_cookie_name)


def _request_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.cookies.get(get_settings().session_cookie_name)


def current_user(request: Request, db: DbClient = Depends(get_db_client)) -> UserRecord:
    token = _request_token(request)
    claims = decode_token(token) if token else None
    if not claims or not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = db.get(UserRecord, claims["sub"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def require_manager(user: UserRecord, message: str = "Insufficient permissions") -> None:
    if not user.is_manager:
        raise HTTPException(status_code=403, detail=message)


def require_owner(user: UserRecord, message: str) -> None:
    if not user.is_account_owner:
        raise HTTPException(status_code=403, detail=message)


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None
