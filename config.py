import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to this file as tifpoint.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "tifpoint.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens (JWT)
    JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_SECONDS = int(os.getenv("JWT_EXPIRES_SECONDS", str(24 * 60 * 60)))

    # Password hashing
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Password policy
    PASSWORD_MIN_LEN = 6
    # bcrypt only accepts 72 bytes
    PASSWORD_MAX_LEN = 72

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = 3
    LOCKOUT_SECONDS = 30

    # Password reset
    RESET_TOKEN_TTL_SECONDS = 60 * 60
    # Return the raw token in the response when email delivery is unavailable.
    # Development only.
    RESET_TOKEN_DEV_FALLBACK = _env_bool("RESET_TOKEN_DEV_FALLBACK", "false")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Per-client request throttle (fixed window, in-process)
    THROTTLE_ENABLED = _env_bool("THROTTLE_ENABLED", "true")
    THROTTLE_MAX_REQUESTS = int(os.getenv("THROTTLE_MAX_REQUESTS", "100"))
    THROTTLE_WINDOW_SECONDS = int(os.getenv("THROTTLE_WINDOW_SECONDS", str(15 * 60)))
    THROTTLE_MAX_KEYS = int(os.getenv("THROTTLE_MAX_KEYS", "10000"))
    # Number of reverse proxies whose X-Forwarded-* headers are trusted
    TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "0"))

    # Audit pipeline
    AUDIT_ASYNC = _env_bool("AUDIT_ASYNC", "true")
    AUDIT_QUEUE_SIZE = int(os.getenv("AUDIT_QUEUE_SIZE", "1000"))
    AUDIT_LOG_DEFAULT_LIMIT = 50
    AUDIT_LOG_MAX_LIMIT = 200

    # Optional security middleware
    SECURITY_HEADERS_ENABLED = _env_bool("SECURITY_HEADERS_ENABLED", "true")
    PATH_FILTER_ENABLED = _env_bool("PATH_FILTER_ENABLED", "true")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
