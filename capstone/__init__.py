"""
Capstone Workflow Service
Flask Application Factory.

Usage:
    from capstone import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from capstone.config import config
from capstone.middleware.identity import init_identity
from capstone.middleware.logging_config import configure_logging
from capstone.middleware.rate_limiter import init_rate_limits
from capstone.middleware.timing import init_request_timing
from capstone.models import db
from capstone.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing + caller identity ─────────────────────────────────
    init_request_timing(app)
    init_identity(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415)

    # ── Import all models so Alembic can detect them ─────────────────────
    from capstone.models import mentorship as _mentorship_models  # noqa: F401
    from capstone.models import notification as _notification_models  # noqa: F401
    from capstone.models import progress as _progress_models  # noqa: F401
    from capstone.models import query as _query_models  # noqa: F401
    from capstone.models import review as _review_models  # noqa: F401
    from capstone.models import team as _team_models  # noqa: F401
    from capstone.models import user as _user_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "testing":
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except SQLAlchemyError as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from capstone.blueprints.health_bp import health_bp
    from capstone.blueprints.mentorship_bp import mentorship_bp
    from capstone.blueprints.progress_bp import progress_bp
    from capstone.blueprints.query_bp import query_bp
    from capstone.blueprints.review_bp import review_bp
    from capstone.blueprints.team_bp import team_bp
    from capstone.blueprints.user_bp import user_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(mentorship_bp)
    app.register_blueprint(review_bp)
    app.register_blueprint(progress_bp)
    app.register_blueprint(query_bp)

    # ── Error handlers (single response envelope) ────────────────────────
    register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
