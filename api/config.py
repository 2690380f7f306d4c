"""
Environment-aware configuration.
Security keys, token lifetimes, registration policy, notifier and CORS.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    DEBUG = False
    TESTING = False
    # "*" or a comma-separated list of origins
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///workforce-auth.db")
    SQL_ECHO = _flag("SQL_ECHO", "false")

    # jwt configurations
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "workforce-auth-api")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "86400")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "604800")))

    # quick login: 30 day window from the last full login, 24h idle limit on top of it
    QUICK_LOGIN_WINDOW = timedelta(days=int(os.getenv("QUICK_LOGIN_WINDOW_DAYS", "30")))
    QUICK_LOGIN_IDLE_LIMIT = timedelta(hours=int(os.getenv("QUICK_LOGIN_IDLE_LIMIT_HOURS", "24")))

    # registration
    VERIFICATION_CODE_TTL = timedelta(minutes=int(os.getenv("VERIFICATION_CODE_TTL_MINUTES", "10")))
    MAX_VERIFICATION_ATTEMPTS = int(os.getenv("MAX_VERIFICATION_ATTEMPTS", "5"))
    MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))
    EXPOSE_VERIFICATION_CODE = _flag("EXPOSE_VERIFICATION_CODE", "false")

    # verification code delivery: "log" or "sendgrid"
    NOTIFIER = os.getenv("NOTIFIER", "log")
    SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
    MAIL_FROM_EMAIL = os.getenv("MAIL_FROM_EMAIL", "noreply@example.com")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    PROPAGATE_EXCEPTIONS = True
    EXPOSE_VERIFICATION_CODE = _flag("EXPOSE_VERIFICATION_CODE", "true")


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    JWT_SECRET = "test-secret"
    EXPOSE_VERIFICATION_CODE = True
    NOTIFIER = "log"


class ProductionConfig(BaseConfig):
    DEBUG = False
    EXPOSE_VERIFICATION_CODE = False
    SQL_ECHO = False


CONFIGS = {
    "dev": DevelopmentConfig,
    "development": DevelopmentConfig,
    "test": TestingConfig,
    "testing": TestingConfig,
    "prod": ProductionConfig,
    "production": ProductionConfig,
}


def get_config(name: str | None):
    """Config class for `name`, falling back to APP_ENV, then to development."""
    env = (name or os.getenv("APP_ENV") or "dev").strip().lower()
    return CONFIGS.get(env, DevelopmentConfig)
