from datetime import timedelta

from dotenv import load_dotenv

from core.settings import settings

load_dotenv()


class BaseApplicationSettings:
    """Base Flask application configuration populated from the environment."""

    SECRET_KEY = settings.secret_key
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    db_uri = settings.sqlalchemy_database_uri
    SQLALCHEMY_DATABASE_URI = db_uri

    # Session settings (signed cookie carrying the principal and pending challenges)
    SESSION_COOKIE_NAME = "__session"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = settings.session_cookie_secure
    SESSION_MAX_AGE = settings.session_max_age_seconds
    PERMANENT_SESSION_LIFETIME = timedelta(seconds=SESSION_MAX_AGE)

    # Internationalisation
    LANGUAGES = ["en"]
    BABEL_DEFAULT_LOCALE = "en"

    LOG_LEVEL = settings.log_level

    SQLALCHEMY_ENGINE_OPTIONS: dict = {}
    if not db_uri.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_recycle": 1800,
            "pool_pre_ping": True,
        }


class Config(BaseApplicationSettings):
    pass


class TestConfig(BaseApplicationSettings):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}
    SESSION_COOKIE_SECURE = False
    WEBAUTHN_RP_ID = "localhost"
    WEBAUTHN_ORIGIN = "http://localhost"
    WEBAUTHN_RP_NAME = "Passkey Login"
