import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import update

from models import db
from models.user import User
from security.password import hash_password


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random reset tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_reset_token(user: User, now: Optional[datetime] = None) -> str:
    """
    Stores the digest of a fresh reset token on the user and returns the RAW
    token for out-of-band delivery. Replaces any token issued before.
    """
    now = now or datetime.utcnow()
    ttl = current_app.config.get("RESET_TOKEN_TTL_SECONDS", 3600)

    raw_token = secrets.token_hex(32)
    user.reset_token_hash = hash_token(raw_token)
    user.reset_token_expiry = now + timedelta(seconds=ttl)
    db.session.commit()
    return raw_token


def redeem_reset_token(raw_token: str, new_password: str, now: Optional[datetime] = None) -> Optional[int]:
    """
    Sets a new password if the token is valid and unexpired.

    Returns the user id, or None when the token is wrong, expired or already
    used. The password swap and the token clear happen in one conditional
    UPDATE, so concurrent redeemers of the same token can't both succeed.
    """
    if not raw_token:
        return None
    now = now or datetime.utcnow()
    digest = hash_token(raw_token)

    user = (
        User.query
        .filter(User.reset_token_hash == digest, User.reset_token_expiry > now)
        .first()
    )
    if not user:
        return None
    user_id = user.id

    new_hash = hash_password(new_password)
    result = db.session.execute(
        update(User)
        .where(
            User.id == user_id,
            User.reset_token_hash == digest,
            User.reset_token_expiry > now,
        )
        .values(
            password_hash=new_hash,
            reset_token_hash=None,
            reset_token_expiry=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.expire_all()

    if result.rowcount != 1:
        return None
    return user_id
