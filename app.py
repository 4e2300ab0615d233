import logging

import click
from flask import Flask
from flask_migrate import Migrate
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from models import db
from models.audit_log import AuditLog
from models.user import User, ROLE_ADMIN
from routes import health_bp, auth_bp, audit_bp
from security.middleware import install_security
from utils.audit import AuditPipeline
from utils.auth_context import load_current_user
from utils.errors import register_error_handlers


def configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app.logger.setLevel(level)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    proxies = int(app.config.get("TRUSTED_PROXY_COUNT", 0))
    if proxies > 0:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies, x_proto=proxies)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Audit pipeline (fire-and-forget writer)
    AuditPipeline(app)

    # Path filter, throttle and security headers, each chosen once here
    install_security(app)

    @app.before_request
    def _load_user():
        load_current_user()

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(audit_bp)

    register_error_handlers(app)
    register_cli(app)

    return app

#-------------------------


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables (development; use `flask db upgrade` otherwise)."""
        db.create_all()
        click.echo("Database tables created")

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        if user.role != ROLE_ADMIN:
            user.role = ROLE_ADMIN
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("audit-tail")
    @click.option("--limit", default=10, show_default=True, help="Number of entries to show.")
    def audit_tail(limit):
        """Show the most recent audit log entries."""
        total = AuditLog.query.count()
        click.echo(f"Audit log count: {total}")
        rows = AuditLog.query.order_by(AuditLog.timestamp.desc()).limit(limit).all()
        for r in rows:
            click.echo(
                f"{r.timestamp.isoformat()} {r.action} user={r.user_id or '-'} "
                f"ip={r.ip or '-'} {r.description or ''}".rstrip()
            )

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5000)
