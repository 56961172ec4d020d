import os


def _env_bool(name, default=False):
    return os.environ.get(name, str(default)).lower() in {"1", "true", "yes", "on"}


class Config:
    # Secret key for sessions / JWT
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-me-in-prod")

    # Database connection
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///boardinghouse.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)

    # Flask Configuration
    FLASK_ENV = os.environ.get("FLASK_ENV", "production")
    FLASK_DEBUG = os.environ.get("FLASK_DEBUG", "False").lower() == "true"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    CORS_ALLOWED_ORIGINS = os.environ.get("CORS_ALLOWED_ORIGINS", "")

    # Scheduler
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", False)
    SCHEDULER_TIMEZONE = os.environ.get("SCHEDULER_TIMEZONE", "America/New_York")
    SCHEDULER_LOOP_INTERVAL = int(os.environ.get("SCHEDULER_LOOP_INTERVAL", 30))

    # Billing
    RECEIPT_PREFIX = os.environ.get("RECEIPT_PREFIX", "RCP")
    PAYMENT_REMINDER_WINDOW_DAYS = int(os.environ.get("PAYMENT_REMINDER_WINDOW_DAYS", 7))
    LEASE_REMINDER_WINDOW_DAYS = int(os.environ.get("LEASE_REMINDER_WINDOW_DAYS", 30))
    NOTIFICATION_ARCHIVE_DAYS = int(os.environ.get("NOTIFICATION_ARCHIVE_DAYS", 30))


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SCHEDULER_ENABLED = False
    LOG_LEVEL = "WARNING"
