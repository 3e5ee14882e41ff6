import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

# Base directory of the package (the "cartracker" folder)
BASE_DIR = Path(__file__).resolve().parent

# Load environment variables from .env next to the package, if present
load_dotenv(BASE_DIR / ".env")

DEFAULT_SECRET = "dev-secret-change-me"


class Config:
    """Main configuration class for the Car Tracker app."""

    # Flask basic config
    SECRET_KEY = os.getenv("SESSION_SECRET", DEFAULT_SECRET)
    DEBUG = os.getenv("FLASK_DEBUG", "0") == "1"
    TESTING = False
    REQUIRE_SECRET = False
    PORT = int(os.getenv("PORT", "3000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database (SQLite by default)
    # If DATABASE_URL is not set, use instance/cartracker.db
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL") or (
        "sqlite:///" + str(BASE_DIR / "instance" / "cartracker.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Requests should not wait on the store longer than this
    REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "30"))
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Sessions: server-side rows, cookie only carries the signed id
    SESSION_COOKIE_NAME = "cartracker.sid"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "0") == "1"
    PERMANENT_SESSION_LIFETIME = timedelta(
        hours=int(os.getenv("SESSION_LIFETIME_HOURS", "8"))
    )

    # Password hashing
    BCRYPT_LOG_ROUNDS = int(os.getenv("BCRYPT_LOG_ROUNDS", "12"))

    # Fixed-window rate limiting per remote address
    RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "120"))
    RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

    # CORS / allowed origins for /api/*
    # Example: "http://127.0.0.1:3000,http://localhost:3000"
    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.getenv("ALLOWED_ORIGINS", "").split(",")
        if origin.strip()
    ]


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REQUIRE_SECRET = True


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    BCRYPT_LOG_ROUNDS = 4
    RATE_LIMIT_MAX = 1000
