from flask import jsonify, request

from security.rate_limit import build_throttle, throttle_request

BLOCKED_PREFIXES = (
    "/src",
    "/routes",
    "/controllers",
    "/middleware",
    "/migrations",
    "/config",
    "/node_modules",
    "/dist",
)
BLOCKED_SUFFIXES = (".ts", ".js", ".map", ".py")


class NullMiddleware:
    """Stands in for a disabled capability."""

    def install(self, app):
        pass


class SecurityHeaders:
    def install(self, app):
        @app.after_request
        def add_security_headers(resp):
            resp.headers["X-Content-Type-Options"] = "nosniff"
            resp.headers["X-Frame-Options"] = "DENY"
            resp.headers["Referrer-Policy"] = "no-referrer"
            resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
            # API only, nothing to load
            resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
            return resp


class PathFilter:
    """Refuses requests for source, config or build paths."""

    def install(self, app):
        @app.before_request
        def _block_sensitive_paths():
            path = request.path
            if any(path.startswith(prefix) for prefix in BLOCKED_PREFIXES):
                return jsonify(error="Access to this directory is forbidden"), 403
            if path.endswith(BLOCKED_SUFFIXES):
                return jsonify(error="Direct file access forbidden"), 403
            return None


class RequestThrottle:
    def install(self, app):
        app.extensions["throttle"] = build_throttle(app.config)
        app.before_request(throttle_request)


def select_middleware(config) -> list:
    """Picks each optional layer or its no-op once, at startup."""
    return [
        PathFilter() if config.get("PATH_FILTER_ENABLED", True) else NullMiddleware(),
        RequestThrottle(),
        SecurityHeaders() if config.get("SECURITY_HEADERS_ENABLED", True) else NullMiddleware(),
    ]


def install_security(app) -> None:
    for layer in select_middleware(app.config):
        layer.install(app)
