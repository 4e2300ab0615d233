import re
from typing import Iterable, List, Optional

from security.password_policy import validate_password

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_USERNAME = re.compile(r"^[a-zA-Z0-9_]{3,20}$")
_UNSAFE_CHARS = re.compile(r"[<>\"']")

NAME_MAX_LEN = 100


def is_valid_email(email) -> bool:
    return isinstance(email, str) and len(email) <= 255 and bool(_EMAIL.match(email))


def is_valid_username(username) -> bool:
    return isinstance(username, str) and bool(_USERNAME.match(username))


def validate_auth_input(data: dict) -> Optional[dict]:
    """
    Checks the optional auth fields that are present.
    Returns an error payload, or None when the input is acceptable.
    """
    email = data.get("email")
    if email and not is_valid_email(email):
        return {"error": "Invalid email format"}

    password = data.get("password")
    if password:
        valid, errors = validate_password(password)
        if not valid:
            return {"error": "Password does not meet policy", "requirements": errors}

    username = data.get("username")
    if username and not is_valid_username(username):
        return {"error": "Username must be 3-20 characters: letters, numbers and underscore only"}

    name = data.get("name")
    if name and (not isinstance(name, str) or len(name) > NAME_MAX_LEN):
        return {"error": f"Name is too long (max {NAME_MAX_LEN} characters)"}

    return None


def sanitize(value, keep: Iterable[str] = ()):
    """
    Recursively strips <>"' and surrounding whitespace from strings.
    Top-level keys listed in ``keep`` (secrets) pass through untouched.
    """
    if isinstance(value, str):
        return _UNSAFE_CHARS.sub("", value).strip()
    if isinstance(value, dict):
        return {k: (v if k in keep else sanitize(v)) for k, v in value.items()}
    if isinstance(value, list):
        return [sanitize(v) for v in value]
    return value


def unexpected_fields(data: dict, allowed: Iterable[str]) -> List[str]:
    allowed = set(allowed)
    return sorted(k for k in data if k not in allowed)
