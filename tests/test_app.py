"""
App wiring: activity-log listing, throttling, optional middleware, CLI.
"""
import pytest

from app import create_app
from models import db
from models.audit_log import AuditLog
from models.user import User, ROLE_ADMIN, ROLE_STUDENT
from security.middleware import NullMiddleware, PathFilter, SecurityHeaders, select_middleware
from security.rate_limit import NullThrottle
from security.rbac import has_role, student_only


@pytest.fixture
def admin_headers(make_user, login):
    make_user(email="admin@example.com", role=ROLE_ADMIN)
    token = login("admin@example.com").get_json()["token"]
    return {"Authorization": f"Bearer {token}"}


class TestActivityLogs:

    def test_requires_authentication(self, client):
        assert client.get("/api/activity-logs").status_code == 401

    def test_students_are_forbidden(self, client, make_user, login):
        make_user(email="student@example.com")
        token = login("student@example.com").get_json()["token"]

        resp = client.get("/api/activity-logs", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403

    def test_admin_lists_newest_first(self, client, admin_headers, login):
        login("nobody@example.com", "whatever")

        resp = client.get("/api/activity-logs", headers=admin_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["pagination"] == {"page": 1, "limit": 50, "total": 2}
        assert [log["action"] for log in body["logs"]] == ["LOGIN_FAILED", "LOGIN_SUCCESS"]

    def test_filters_and_limit_cap(self, client, admin_headers, login):
        for _ in range(3):
            login("nobody@example.com", "whatever")

        resp = client.get(
            "/api/activity-logs?action=LOGIN_FAILED&limit=1000&page=1",
            headers=admin_headers,
        )

        body = resp.get_json()
        assert body["pagination"]["limit"] == 200
        assert body["pagination"]["total"] == 3
        assert {log["action"] for log in body["logs"]} == {"LOGIN_FAILED"}

    def test_filter_by_user(self, app, client, admin_headers):
        with app.app_context():
            admin_id = User.query.filter_by(email="admin@example.com").one().id

        resp = client.get(f"/api/activity-logs?userId={admin_id}", headers=admin_headers)

        logs = resp.get_json()["logs"]
        assert logs and all(log["userId"] == admin_id for log in logs)

    @pytest.mark.parametrize("value", ["abc", "1.5", "12abc"])
    def test_non_integer_user_filter_is_rejected(self, client, admin_headers, value):
        resp = client.get(f"/api/activity-logs?userId={value}", headers=admin_headers)

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "userId must be an integer"


class TestThrottle:

    @pytest.fixture
    def small_app(self, tmp_path):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "throttle.db"),
            "AUDIT_ASYNC": False,
            "THROTTLE_MAX_REQUESTS": 3,
        })
        with app.app_context():
            db.create_all()
        yield app
        with app.app_context():
            db.drop_all()

    def test_fourth_request_is_rejected(self, small_app):
        client = small_app.test_client()

        statuses = [client.get("/health").status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]
        resp = client.get("/health")
        assert int(resp.headers["Retry-After"]) > 0
        assert resp.get_json()["retry_after_seconds"] == int(resp.headers["Retry-After"])
        with small_app.app_context():
            assert AuditLog.query.filter_by(action="RATE_LIMITED").count() == 2

    def test_clients_are_keyed_by_address(self, small_app):
        client = small_app.test_client()
        for _ in range(3):
            client.get("/health", environ_base={"REMOTE_ADDR": "10.0.0.1"})

        assert client.get("/health", environ_base={"REMOTE_ADDR": "10.0.0.1"}).status_code == 429
        assert client.get("/health", environ_base={"REMOTE_ADDR": "10.0.0.2"}).status_code == 200

    def test_forwarded_header_is_ignored_without_trusted_proxy(self, small_app):
        client = small_app.test_client()

        statuses = [
            client.get("/health", headers={"X-Forwarded-For": f"1.2.3.{i}"}).status_code
            for i in range(10)
        ]

        assert statuses[:3] == [200, 200, 200]
        assert set(statuses[3:]) == {429}
        assert len(small_app.extensions["throttle"]) == 1

    def test_forwarded_header_is_used_behind_trusted_proxy(self, tmp_path):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "proxied.db"),
            "AUDIT_ASYNC": False,
            "THROTTLE_MAX_REQUESTS": 3,
            "TRUSTED_PROXY_COUNT": 1,
        })
        with app.app_context():
            db.create_all()
        client = app.test_client()

        for _ in range(3):
            client.get("/health", headers={"X-Forwarded-For": "10.0.0.1"})

        assert client.get("/health", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429
        assert client.get("/health", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
        with app.app_context():
            row = AuditLog.query.filter_by(action="RATE_LIMITED").one()
            assert row.ip == "10.0.0.1"
            db.drop_all()

    def test_disabled_throttle_is_a_no_op(self, tmp_path):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "nothrottle.db"),
            "THROTTLE_ENABLED": False,
        })
        assert isinstance(app.extensions["throttle"], NullThrottle)


class TestSecurityMiddleware:

    def test_security_headers(self, client):
        resp = client.get("/")

        assert resp.get_json() == {"message": "Welcome to TIFPoint API"}
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    @pytest.mark.parametrize("path", ["/src/index.ts", "/config/settings", "/migrations/env.py", "/bundle.js.map"])
    def test_sensitive_paths_are_blocked(self, client, path):
        assert client.get(path).status_code == 403

    def test_unknown_route_is_json_404(self, client):
        resp = client.get("/api/nothing-here")

        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Not found"}

    def test_layers_are_chosen_from_config(self):
        on = select_middleware({"PATH_FILTER_ENABLED": True, "SECURITY_HEADERS_ENABLED": True})
        off = select_middleware({"PATH_FILTER_ENABLED": False, "SECURITY_HEADERS_ENABLED": False})

        assert isinstance(on[0], PathFilter) and isinstance(on[-1], SecurityHeaders)
        assert isinstance(off[0], NullMiddleware) and isinstance(off[-1], NullMiddleware)

    def test_headers_absent_when_disabled(self, tmp_path):
        app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "plain.db"),
            "SECURITY_HEADERS_ENABLED": False,
        })
        resp = app.test_client().get("/health")

        assert resp.status_code == 200
        assert "X-Frame-Options" not in resp.headers


class TestCli:

    def test_make_admin(self, app, make_user):
        user_id = make_user(email="ani@example.com")

        result = app.test_cli_runner().invoke(args=["make-admin", "ani@example.com"])

        assert "promoted to ADMIN" in result.output
        with app.app_context():
            assert db.session.get(User, user_id).role == ROLE_ADMIN

    def test_make_admin_unknown_user(self, app):
        result = app.test_cli_runner().invoke(args=["make-admin", "nobody@example.com"])
        assert "User not found" in result.output

    def test_audit_tail(self, app, login):
        login("nobody@example.com", "whatever")

        result = app.test_cli_runner().invoke(args=["audit-tail", "--limit", "5"])

        assert "Audit log count: 1" in result.output
        assert "LOGIN_FAILED" in result.output


class TestRoleGuards:

    @pytest.fixture
    def guarded_client(self, app):
        @app.get("/api/student-area")
        @student_only
        def student_area():
            return {"ok": has_role(ROLE_STUDENT)}

        return app.test_client()

    def test_student_passes(self, guarded_client, make_user, login):
        make_user(email="student@example.com")
        token = login("student@example.com").get_json()["token"]

        resp = guarded_client.get("/api/student-area", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 200
        assert resp.get_json() == {"ok": True}

    def test_admin_is_refused(self, guarded_client, admin_headers):
        resp = guarded_client.get("/api/student-area", headers=admin_headers)

        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Access denied. Only MAHASISWA."
