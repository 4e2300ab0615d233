import re
from typing import List, Tuple

from flask import current_app, has_app_context

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")

# hashpw refuses longer input
BCRYPT_MAX_BYTES = 72

_DEFAULTS = {
    "PASSWORD_MIN_LEN": 6,
    "PASSWORD_MAX_LEN": BCRYPT_MAX_BYTES,
    "PASSWORD_REQUIRE_UPPER": False,
    "PASSWORD_REQUIRE_LOWER": False,
    "PASSWORD_REQUIRE_DIGIT": False,
    "PASSWORD_REQUIRE_SYMBOL": False,
}


def _cfg(name: str):
    if not has_app_context():
        return _DEFAULTS[name]
    return current_app.config.get(name, _DEFAULTS[name])


def validate_password(pw: str) -> Tuple[bool, List[str]]:
    errors: List[str] = []

    if not isinstance(pw, str):
        return False, ["Password must be a string"]

    min_len = int(_cfg("PASSWORD_MIN_LEN"))
    max_len = int(_cfg("PASSWORD_MAX_LEN"))

    if len(pw) < min_len:
        errors.append(f"Password must be at least {min_len} characters")
    if len(pw) > max_len:
        errors.append(f"Password must be at most {max_len} characters")
    elif len(pw.encode("utf-8")) > BCRYPT_MAX_BYTES:
        errors.append(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")

    if _cfg("PASSWORD_REQUIRE_UPPER") and not _UPPER.search(pw):
        errors.append("Password must include at least 1 uppercase letter")
    if _cfg("PASSWORD_REQUIRE_LOWER") and not _LOWER.search(pw):
        errors.append("Password must include at least 1 lowercase letter")
    if _cfg("PASSWORD_REQUIRE_DIGIT") and not _DIGIT.search(pw):
        errors.append("Password must include at least 1 number")
    if _cfg("PASSWORD_REQUIRE_SYMBOL") and not _SYMBOL.search(pw):
        errors.append("Password must include at least 1 symbol")

    return (len(errors) == 0), errors
