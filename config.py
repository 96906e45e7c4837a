import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "you-should-change-this"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY") or "super-secret-jwt"
    STORE_BACKEND = os.environ.get("STORE_BACKEND") or "sql"
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER") or "uploads"
    UPLOAD_SUBFOLDERS = ("profile", "banners", "collectibles")
    ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg"}
    MAX_CONTENT_LENGTH = 3 * 1024 * 1024
    NOTIFICATIONS_DEFAULT_LIMIT = 20
    RECOMMENDATIONS_LIMIT = 5
    USER_SEARCH_MIN_LENGTH = 2


class DefaultConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or "sqlite:///collector.db"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    STORE_BACKEND = "sql"
    UPLOAD_FOLDER = "test_uploads"
