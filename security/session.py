from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app, request

from models.user import User


def issue_token(user: User) -> str:
    """
    Signs a time-bounded bearer token carrying the user's id and role.
    """
    lifetime = current_app.config.get("JWT_EXPIRES_SECONDS", 24 * 60 * 60)
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(seconds=lifetime),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def decode_token(raw_token: str) -> Optional[dict]:
    if not raw_token:
        return None
    try:
        return jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.PyJWTError:
        return None


def get_token_from_request() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_claims_from_request() -> Optional[dict]:
    return decode_token(get_token_from_request())
