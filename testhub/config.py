"""
testhub settings, one class per environment.

    create_app()            -> APP_ENV, default "development"
    create_app("testing")   -> in-memory SQLite, local storage, no rate limits

Values come from the environment; the classes only supply defaults.
ProductionConfig is instantiated by the factory so its checks run at startup.
"""

import os
import secrets
import tempfile

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
instance_dir = os.path.join(basedir, "instance")


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _database_url(default=None):
    # SQLAlchemy 2 only understands the postgresql:// scheme
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or default


_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


class Config:
    # Flask / auth
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 8 * 3600)
    DEBUG = False
    TESTING = False

    # Database
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL_OPTIONS)
    SLOW_QUERY_MS = _env_int("SLOW_QUERY_MS", 1000)

    # HTTP surface
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    RATELIMIT_ENABLED = True
    LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10 per minute")

    # Object storage: "s3" or "local"
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
    S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME")
    S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
    AWS_REGION = os.getenv("AWS_REGION", "ap-northeast-1")
    AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
    LOCAL_STORAGE_ROOT = os.getenv("LOCAL_STORAGE_ROOT", os.path.join(instance_dir, "storage"))
    STORAGE_TEMP_PREFIX = os.getenv("STORAGE_TEMP_PREFIX", "temp")
    MAX_UPLOAD_SIZE = 100 * 1024 * 1024
    # multipart overhead on top of one full-size file
    MAX_CONTENT_LENGTH = MAX_UPLOAD_SIZE + 1024 * 1024

    # Which history snapshot the results listing shows: "latest" or "first"
    EVIDENCE_SNAPSHOT = os.getenv("EVIDENCE_SNAPSHOT", "latest")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(f"sqlite:///{os.path.join(instance_dir, 'testhub_dev.db')}")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "testing-jwt-secret-key-with-enough-length"
    RATELIMIT_ENABLED = False
    STORAGE_BACKEND = "local"
    LOCAL_STORAGE_ROOT = os.path.join(tempfile.gettempdir(), "testhub-test-storage")


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "s3")

    def __init__(self):
        missing = [
            name for name, value in (
                ("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
                ("SECRET_KEY", os.getenv("SECRET_KEY")),
            ) if not value
        ]
        if missing:
            raise RuntimeError(f"Production requires {', '.join(missing)} to be set")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
