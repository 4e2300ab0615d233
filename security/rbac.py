from functools import wraps
from flask import g

from models.user import ROLE_ADMIN, ROLE_STUDENT
from utils.errors import AuthenticationFailure, Forbidden


def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return user.role == role_name


def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return AuthenticationFailure("User not authenticated").to_response()

            if user.role not in role_names:
                return Forbidden(f"Access denied. Only {', '.join(role_names)}.").to_response()

            return fn(*args, **kwargs)
        return wrapper
    return decorator


admin_only = require_roles(ROLE_ADMIN)
student_only = require_roles(ROLE_STUDENT)
