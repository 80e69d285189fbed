import os
import secrets
import warnings

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _env_int(name, default):
    return int(os.environ.get(name) or default)


def _env_list(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    # Generate secure keys if not provided (with warnings)
    _secret_key = os.environ.get("SECRET_KEY")
    _csrf_key = os.environ.get("WTF_CSRF_SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "SECRET_KEY not set! Using auto-generated key. "
            "Sessions will reset on app restart. "
            "Run 'python3 generate_secrets.py' to generate secure keys.",
            UserWarning,
        )

    if not _csrf_key:
        _csrf_key = secrets.token_urlsafe(32)

    SECRET_KEY = _secret_key
    WTF_CSRF_SECRET_KEY = _csrf_key

    # Shared secret for the external cron trigger (lock-matches)
    CRON_SECRET = os.environ.get("CRON_SECRET")

    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "prode_db"
            db_user = os.environ.get("DB_USER") or "prode_user"
            db_password = os.environ.get("DB_PASSWORD") or "prode_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            return "sqlite:///" + os.path.join(basedir, "prode.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Scoring rules (points per tier, must decrease from exact to one score)
    SCORING_EXACT_SCORE = _env_int("SCORING_EXACT_SCORE", 12)
    SCORING_WINNER_PLUS_ONE_SCORE = _env_int("SCORING_WINNER_PLUS_ONE_SCORE", 7)
    SCORING_WINNER_ONLY = _env_int("SCORING_WINNER_ONLY", 5)
    SCORING_ONE_SCORE_ONLY = _env_int("SCORING_ONE_SCORE_ONLY", 2)

    # Leaderboard ordering after total points; creation time always comes last
    LEADERBOARD_TIEBREAKERS = _env_list("LEADERBOARD_TIEBREAKERS", ["exact_scores"])
    LEADERBOARD_PAGE_SIZE = _env_int("LEADERBOARD_PAGE_SIZE", 50)
    LEADERBOARD_MAX_PAGE_SIZE = 100

    # Predictions close this many minutes before kickoff
    MATCH_LOCK_MINUTES = _env_int("MATCH_LOCK_MINUTES", 15)
    TIMEZONE = os.environ.get("TIMEZONE", "America/Argentina/Buenos_Aires")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(os.environ.get("CACHE_DEFAULT_TIMEOUT", 300))
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "prode:"

    # Rate limiting
    RATELIMIT_ENABLED = True

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    LOCK_MATCHES_INTERVAL_MINUTES = _env_int("LOCK_MATCHES_INTERVAL_MINUTES", 5)
    LEADERBOARD_REBUILD_HOUR = _env_int("LEADERBOARD_REBUILD_HOUR", 4)

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        try:
            redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
            redis_client.ping()
        except redis.exceptions.ConnectionError:
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SECRET_KEY not explicitly set! "
                "Using auto-generated key is not recommended for production.",
                UserWarning,
            )
        if not os.environ.get("CRON_SECRET"):
            warnings.warn(
                "PRODUCTION WARNING: CRON_SECRET not set, "
                "the lock-matches cron endpoint will reject every call.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    WTF_CSRF_ENABLED = False
    CACHE_TYPE = "SimpleCache"
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    CRON_SECRET = "test-cron-secret"
    LEADERBOARD_TIEBREAKERS = ["exact_scores"]

    def _build_database_uri(self):
        return "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
