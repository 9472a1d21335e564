"""
Application factory for the academy portal.

This module provides create_app() which initializes Flask, extensions,
logging and error handlers, and registers blueprints.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, request
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# Validate required environment variables
required_env_vars = ["SECRET_KEY", "DATABASE_URL", "FLASK_ENV", "ENCRYPTION_KEY"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise RuntimeError(
        "Missing required environment variables: " + ", ".join(missing_vars)
    )


def _engine_options(database_url):
    """Bound every store operation: pool checkout always, statements on PostgreSQL."""
    options = {
        'pool_pre_ping': True,
        'pool_timeout': int(os.getenv("DB_POOL_TIMEOUT", "10")),
    }
    if database_url.startswith("sqlite"):
        # SQLite uses a static/singleton pool that does not accept pool_timeout
        options.pop('pool_timeout')
    elif database_url.startswith("postgres"):
        statement_timeout = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000"))
        options['connect_args'] = {'options': f"-c statement_timeout={statement_timeout}"}
    return options


def _configure_logging(app):
    """
    Send application and background-job logs to stderr, plus a rotating
    file in production. LOG_LEVEL and LOG_FORMAT override the defaults.
    """
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(os.getenv(
        "LOG_FORMAT",
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    ))

    handlers = [logging.StreamHandler()]
    if app.config.get("ENV") == "production":
        handlers.append(RotatingFileHandler(
            os.getenv("LOG_FILE", "academy.log"), maxBytes=1_000_000, backupCount=5
        ))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    # Replace rather than append so re-created apps do not log twice
    app.logger.handlers = list(handlers)
    app.logger.setLevel(level)

    for name in ('mailer', 'scheduled_tasks'):
        job_logger = logging.getLogger(name)
        job_logger.handlers = list(handlers)
        job_logger.setLevel(level)
        job_logger.propagate = False


def _register_security_headers(app):

    @app.after_request
    def set_security_headers(response):
        """
        Add OWASP recommended headers to every response.

        See: https://owasp.org/www-project-secure-headers/
        """
        headers = response.headers
        headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        headers['X-Frame-Options'] = 'DENY'
        headers['X-Content-Type-Options'] = 'nosniff'
        headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        # JSON-only API: nothing may be loaded or framed
        headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        headers['Permissions-Policy'] = ", ".join(
            f"{feature}=()" for feature in ('geolocation', 'microphone', 'camera', 'payment', 'usb')
        )
        if request.path.startswith('/api/'):
            headers.setdefault('Cache-Control', 'no-store')
        return response


# -------------------- APPLICATION FACTORY --------------------

def create_app():
    """
    Application factory function.

    Creates and configures the Flask application, initializes extensions,
    sets up logging, registers error handlers and blueprints.

    Returns:
        Flask: Configured Flask application instance
    """
    from academy.auth import SESSION_LIFETIME

    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    database_url = os.environ["DATABASE_URL"]
    app.config.from_mapping(
        DEBUG=False,
        ENV=os.environ["FLASK_ENV"],
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=database_url,
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SQLALCHEMY_ENGINE_OPTIONS=_engine_options(database_url),
        SESSION_COOKIE_SECURE=True,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=SESSION_LIFETIME,
        ACADEMY_NAME=os.getenv("ACADEMY_NAME", "Academy Portal"),
        ACADEMY_TIMEZONE=os.getenv("ACADEMY_TIMEZONE", "Asia/Kolkata"),
        DEFAULT_STUDENT_PASSWORD=os.getenv("DEFAULT_STUDENT_PASSWORD", "password123"),
        SMTP_HOST=os.getenv("SMTP_HOST"),
        SMTP_PORT=os.getenv("SMTP_PORT", "587"),
        SMTP_USER=os.getenv("SMTP_USER"),
        SMTP_PASS=os.getenv("SMTP_PASS"),
        SMTP_FROM_EMAIL=os.getenv("SMTP_FROM_EMAIL"),
    )

    _configure_logging(app)

    # -------------------- EXTENSIONS --------------------
    from academy.extensions import db, migrate, csrf, limiter, mailer

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)
    mailer.init_app(app)

    # -------------------- ERROR HANDLERS --------------------
    from academy.errors import register_error_handlers
    register_error_handlers(app)

    # -------------------- REGISTER BLUEPRINTS --------------------
    from academy.routes.main import main_bp
    from academy.routes.account import account_bp
    from academy.routes.family import family_bp
    from academy.routes.admin import admin_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(account_bp)
    app.register_blueprint(family_bp)
    app.register_blueprint(admin_bp)

    _register_security_headers(app)

    # -------------------- CLI COMMANDS --------------------
    from academy import cli_commands
    cli_commands.init_app(app)

    # -------------------- SCHEDULED TASKS --------------------
    if not app.config.get("TESTING") and app.config.get("ENV") != "testing":
        from academy.scheduled_tasks import init_scheduled_tasks
        init_scheduled_tasks(app)

    return app


# Create a default application instance for the WSGI server and CLI
app = create_app()

# Re-export commonly used objects for convenience
from academy.extensions import db  # noqa: E402

__all__ = [
    "app",
    "create_app",
    "db",
]
