from functools import wraps
from flask import g, jsonify
from security.session import get_claims_from_request
from models import db
from models.user import User


def load_current_user():
    claims = get_claims_from_request()
    if not claims or "id" not in claims:
        g.user = None
        g.claims = None
        return
    g.claims = claims
    g.user = db.session.get(User, claims["id"])


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="User not authenticated"), 401
        return fn(*args, **kwargs)
    return wrapper
