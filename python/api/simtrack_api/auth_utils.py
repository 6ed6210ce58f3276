"""Password hashing and session token utilities."""
from __future__ import annotations

import secrets

import bcrypt


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def new_session_token() -> str:
    return "st_" + secrets.token_urlsafe(32)
