import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from models import db
from models.user import User
from security.password import verify_password
from utils.audit import ACCOUNT_LOCKED, LOGIN_FAILED, log_event

logger = logging.getLogger(__name__)

LOCKED = "LOCKED"
SUCCESS = "SUCCESS"
FAILURE = "FAILURE"


@dataclass(frozen=True)
class LoginOutcome:
    status: str
    seconds_remaining: int = 0
    attempts_remaining: int = 0

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS


def _max_attempts() -> int:
    return int(current_app.config.get("MAX_LOGIN_ATTEMPTS", 3))


def _lockout_seconds() -> int:
    return int(current_app.config.get("LOCKOUT_SECONDS", 30))


def is_locked(user: User, now: Optional[datetime] = None) -> tuple[bool, int]:
    """
    Returns (locked, seconds_remaining)
    """
    now = now or datetime.utcnow()
    if not user.locked_until or user.locked_until <= now:
        return False, 0

    seconds = math.ceil((user.locked_until - now).total_seconds())
    return True, max(seconds, 1)


def register_failure(user: User, now: Optional[datetime] = None) -> tuple[int, bool]:
    """
    Increments failure counter. Returns (fail_count, locked_now)
    """
    now = now or datetime.utcnow()

    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

    locked_now = False
    if user.failed_login_attempts >= _max_attempts():
        user.locked_until = now + timedelta(seconds=_lockout_seconds())
        locked_now = True

    db.session.commit()
    return user.failed_login_attempts, locked_now


def reset_attempts(user: User) -> None:
    """
    Clears failure counter after successful login.
    """
    if not user.failed_login_attempts and user.locked_until is None:
        return
    user.failed_login_attempts = 0
    user.locked_until = None
    db.session.commit()


def evaluate_login(user: User, password: str, now: Optional[datetime] = None) -> LoginOutcome:
    """
    Checks lockout state, then the password, and updates the counters.

    A locked account is rejected before the password is compared and the
    attempt does not count as a failure.
    """
    now = now or datetime.utcnow()

    locked, seconds_left = is_locked(user, now)
    if locked:
        log_event(
            ACCOUNT_LOCKED,
            user_id=user.id,
            description=f"Account locked for {seconds_left} seconds",
        )
        return LoginOutcome(LOCKED, seconds_remaining=seconds_left)

    if verify_password(password, user.password_hash):
        reset_attempts(user)
        return LoginOutcome(SUCCESS)

    fail_count, locked_now = register_failure(user, now)
    remaining = max(0, _max_attempts() - fail_count)
    if locked_now:
        logger.warning(
            "Account %s locked for %ds after %d failed login attempts",
            user.id, _lockout_seconds(), fail_count,
        )
    log_event(
        LOGIN_FAILED,
        user_id=user.id,
        description=f"Incorrect password ({remaining} attempts left)",
    )
    return LoginOutcome(FAILURE, attempts_remaining=remaining)
