import logging
import os

import redis
from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
login_manager = LoginManager()
cache = Cache()
migrate = Migrate()
csrf = CSRFProtect()


def get_real_ip():
    """
    Get the real client IP address, accounting for reverse proxies.
    Checks X-Forwarded-For, X-Real-IP, and falls back to remote_addr.
    """
    # X-Forwarded-For: client, proxy1, proxy2, ...
    if request.headers.get("X-Forwarded-For"):
        return request.headers.get("X-Forwarded-For").split(",")[0].strip()
    if request.headers.get("X-Real-IP"):
        return request.headers.get("X-Real-IP")
    return get_remote_address()


# Use Redis in production for shared rate limiting across multiple workers
limiter_storage_uri = "memory://"
redis_url = os.environ.get("REDIS_URL") or os.environ.get("CACHE_REDIS_URL")
if redis_url:
    try:
        redis_client = redis.Redis.from_url(redis_url)
        redis_client.ping()
        limiter_storage_uri = redis_url
        logger.info(f"Rate limiter using Redis storage at {redis_url}")
    except redis.exceptions.ConnectionError as e:
        logger.warning(f"Redis not available for rate limiter, using memory storage: {e}")

limiter = Limiter(
    key_func=get_real_ip,
    default_limits=["10000 per day", "1000 per hour"],
    storage_uri=limiter_storage_uri,
)


def create_app(config_name=None):
    app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SECURE"] = (
        False
        if app.config.get("DEBUG") or app.config.get("TESTING")
        else app.config.get("FLASK_ENV") == "production"
    )

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # JSON clients get a 401 instead of a login redirect
    login_manager.login_view = None

    from prode.routes.api import bp as api_bp

    # The JSON API authenticates with the session cookie or the cron secret,
    # forms used there are built with csrf disabled
    csrf.exempt(api_bp)
    app.register_blueprint(api_bp, url_prefix="/api")

    register_error_handlers(app)

    from prode.utils.logging_config import setup_logging

    setup_logging(app)

    show_config_warnings(app, config_name)

    with app.app_context():
        db.create_all()

    if not app.config.get("TESTING", False):
        from prode.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


def show_config_warnings(app, config_name):
    """Log configuration warnings and status"""
    logger.info(f"Prode starting with '{config_name}' configuration")

    if config_name == "production" and app.config.get("DEBUG"):
        logger.warning("DEBUG mode is enabled in production!")

    if not app.config.get("CRON_SECRET"):
        logger.warning("CRON_SECRET not set: /api/cron/lock-matches is disabled")

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if "sqlite" in db_url:
        logger.info("Using SQLite database" + (" (in-memory)" if "memory" in db_url else ""))
    elif "postgresql" in db_url:
        logger.info("Using PostgreSQL database")
    else:
        logger.info(
            f"Using database: {db_url.split('://')[0] if '://' in db_url else 'Unknown'}"
        )


def register_error_handlers(app):
    """Register global error handlers"""
    from werkzeug.exceptions import HTTPException

    from prode.errors import ProdeError

    @app.after_request
    def after_request(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        if not app.config.get("DEBUG"):
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response

    @app.errorhandler(ProdeError)
    def handle_prode_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{error.code}: {error.message} - Path: {request.path}")
        else:
            app.logger.info(f"{error.code}: {error.message} - Path: {request.path}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        if error.code == 400:
            app.logger.warning(
                f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
            )
        return jsonify({"error": error.description, "code": error.name}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


from prode import models  # noqa: F401, E402 - imported for model registration
