import logging

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User, ROLE_STUDENT
from security.bruteforce import evaluate_login, LOCKED
from security.password import dummy_verify, hash_password
from security.password_policy import validate_password
from security.reset_token import issue_reset_token, redeem_reset_token
from security.session import issue_token
from utils.audit import (
    log_event,
    CREATE_USER,
    LOGIN_FAILED,
    LOGIN_SUCCESS,
    PASSWORD_RESET_FAILED,
    PASSWORD_RESET_REQUESTED,
    PASSWORD_RESET_SUCCESS,
)
from utils.auth_context import login_required
from utils.emailer import email_configured, send_password_reset_email
from utils.errors import AuthenticationFailure, ValidationError
from utils.validators import sanitize, unexpected_fields, validate_auth_input

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

REGISTER_FIELDS = ("username", "email", "password", "name", "nim")
SECRET_FIELDS = ("password", "newPassword", "token")

RESET_REQUEST_MESSAGE = "If your email is registered, you will receive a password reset link"


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return {}
    return sanitize(data, keep=SECRET_FIELDS)


def _normalize_email(value) -> str:
    return (value or "").strip().lower() if isinstance(value, str) else ""


@auth_bp.post("/register")
def register():
    data = _json_body()

    invalid = unexpected_fields(data, REGISTER_FIELDS)
    if invalid:
        raise ValidationError(
            "Invalid fields provided",
            invalidFields=invalid,
            allowedFields=list(REGISTER_FIELDS),
        )

    username = data.get("username") or ""
    email = _normalize_email(data.get("email"))
    password = data.get("password") or ""
    name = data.get("name") or ""
    nim = data.get("nim") or None

    if not username or not email or not password or not name:
        raise ValidationError("All fields are required")

    problem = validate_auth_input({**data, "email": email})
    if problem:
        raise ValidationError(problem.pop("error"), **problem)

    if User.query.filter_by(email=email).first():
        raise ValidationError("Email already in use")
    if User.query.filter_by(username=username).first():
        raise ValidationError("Username already in use")
    if nim and User.query.filter_by(nim=nim).first():
        raise ValidationError("NIM already in use")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        name=name,
        nim=nim,
        role=ROLE_STUDENT,
    )
    db.session.add(user)
    db.session.commit()

    resp = jsonify(message="User registered successfully", user=user.to_public_dict())
    log_event(CREATE_USER, user_id=user.id, description="User registered")
    return resp, 201


@auth_bp.post("/login")
def login():
    data = _json_body()
    email = _normalize_email(data.get("email"))
    password = data.get("password") or ""

    if not email or not isinstance(password, str) or not password:
        raise ValidationError("Please provide email and password")

    user = User.query.filter_by(email=email).first()
    if not user:
        # same work and same response as a wrong password
        dummy_verify(password)
        log_event(LOGIN_FAILED, description=f"Login attempt with unknown email: {email}")
        raise AuthenticationFailure()

    outcome = evaluate_login(user, password)
    if outcome.status == LOCKED:
        raise AuthenticationFailure(
            "Too many failed attempts. Account temporarily locked.",
            status_code=429,
            retry_after_seconds=outcome.seconds_remaining,
        )
    if not outcome.ok:
        raise AuthenticationFailure()

    token = issue_token(user)
    resp = jsonify(message="Login successful", token=token, user=user.to_public_dict())
    log_event(LOGIN_SUCCESS, user_id=user.id, description="User logged in")
    return resp, 200


@auth_bp.get("/profile")
@login_required
def profile():
    return jsonify(g.user.to_public_dict()), 200


@auth_bp.post("/forgot-password")
def forgot_password():
    data = _json_body()
    email = _normalize_email(data.get("email"))
    if not email:
        raise ValidationError("Email is required")

    user = User.query.filter_by(email=email).first()
    if not user:
        log_event(PASSWORD_RESET_REQUESTED, description="Reset requested for unknown email")
        return jsonify(message=RESET_REQUEST_MESSAGE), 200

    raw_token = issue_reset_token(user)
    log_event(PASSWORD_RESET_REQUESTED, user_id=user.id, description="Reset token issued")

    if email_configured():
        sent, error = send_password_reset_email(user.email, raw_token, user.name)
    else:
        sent, error = False, "Email not configured"

    if sent:
        return jsonify(message=RESET_REQUEST_MESSAGE), 200

    # The token stays valid; delivery is the only thing that failed.
    logger.warning("Password reset email for user %s not delivered: %s", user.id, error)
    if current_app.config.get("RESET_TOKEN_DEV_FALLBACK", False):
        return jsonify(
            message="Email delivery unavailable. Here is your reset token for development:",
            resetToken=raw_token,
            note="Token is still valid for password reset",
        ), 200
    return jsonify(message=RESET_REQUEST_MESSAGE), 200


@auth_bp.post("/reset-password")
def reset_password():
    data = _json_body()
    token = data.get("token") or ""
    new_password = data.get("newPassword") or ""

    if not isinstance(token, str) or not token or not isinstance(new_password, str) or not new_password:
        raise ValidationError("Token and new password are required")

    valid, errors = validate_password(new_password)
    if not valid:
        raise ValidationError("Password does not meet policy", requirements=errors)

    user_id = redeem_reset_token(token, new_password)
    if user_id is None:
        log_event(PASSWORD_RESET_FAILED, description="Invalid or expired reset token")
        raise AuthenticationFailure("Invalid or expired reset token", status_code=400)

    resp = jsonify(message="Password has been reset successfully")
    log_event(PASSWORD_RESET_SUCCESS, user_id=user_id, description="Password reset via token")
    return resp, 200
