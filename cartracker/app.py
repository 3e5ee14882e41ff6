import logging
import os
from dataclasses import dataclass

import click
from flask import Flask, jsonify, request
from flask_cors import CORS
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import MethodNotAllowed, NotFound

from .config import BASE_DIR, DEFAULT_SECRET, Config
from .models import db
from .routes import create_blueprint
from .services import bcrypt, login_manager
from .services.auth import UserDirectory
from .services.cars import CarRepository, CarService, PersistenceError
from .services.middleware import RateLimiter, init_middleware
from .services.sessions import DatabaseSessionInterface

logger = logging.getLogger(__name__)

# Routes that answer in JSON, also when they fail
JSON_PATHS = {"/data", "/add", "/modify", "/delete", "/healthz"}


@dataclass
class Services:
    """Long-lived handles built at startup and shared by every request."""

    users: UserDirectory
    cars: CarService
    sessions: DatabaseSessionInterface
    rate_limiter: RateLimiter


def _wants_json() -> bool:
    return request.path in JSON_PATHS or request.path.startswith("/api/")


def configure_logging(app: Flask) -> None:
    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine_options(app: Flask) -> dict:
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        # how long a write waits on a locked database file
        connect_args = dict(options.get("connect_args") or {})
        connect_args.setdefault("timeout", app.config["REQUEST_TIMEOUT"])
        options["connect_args"] = connect_args
    return options


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(NotFound)
    @app.errorhandler(MethodNotAllowed)
    def not_found(e):
        return "Not found", 404, {"Content-Type": "text/plain; charset=utf-8"}

    @app.errorhandler(SQLAlchemyError)
    def database_error(e):
        db.session.rollback()
        logger.exception("Unhandled database error on %s %s", request.method, request.path)
        return _server_error()

    @app.errorhandler(PersistenceError)
    def persistence_error(e):
        return _server_error()


def _server_error():
    if _wants_json():
        return jsonify({"error": "Internal server error."}), 500
    return "Internal server error.", 500, {"Content-Type": "text/plain; charset=utf-8"}


def register_commands(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables."""
        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("purge-sessions")
    def purge_sessions_command():
        """Delete expired sessions."""
        deleted = app.extensions["cartracker"].sessions.purge_expired()
        click.echo(f"Removed {deleted} expired session(s).")


def _connect_store(app: Flask) -> None:
    """Create tables and prove the store answers. Failure stops startup."""
    safe_url = make_url(app.config["SQLALCHEMY_DATABASE_URI"]).render_as_string(
        hide_password=True
    )
    try:
        db.create_all()
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.critical("Database connection error (%s)", safe_url)
        raise RuntimeError("Cannot reach the database; refusing to start.") from exc
    finally:
        db.session.remove()
    logger.info("Database connected (%s)", safe_url)


def create_app(config_object=None, **overrides) -> Flask:
    """Build the application, its services and its database connection."""
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_object(config_object or Config)
    app.config.update(overrides)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app)

    configure_logging(app)

    if app.config["REQUIRE_SECRET"] and app.config["SECRET_KEY"] == DEFAULT_SECRET:
        raise RuntimeError("SESSION_SECRET must be set in production.")

    # Ensure the instance folder exists for the default SQLite file
    os.makedirs(BASE_DIR / "instance", exist_ok=True)

    # Init extensions
    db.init_app(app)
    bcrypt.init_app(app)
    login_manager.init_app(app)

    # CORS for API routes
    CORS(app, resources={r"/api/*": {"origins": app.config["ALLOWED_ORIGINS"] or "*"}})

    services = Services(
        users=UserDirectory(),
        cars=CarService(CarRepository()),
        sessions=DatabaseSessionInterface(db),
        rate_limiter=RateLimiter(
            app.config["RATE_LIMIT_MAX"], app.config["RATE_LIMIT_WINDOW_SECONDS"]
        ),
    )
    app.extensions["cartracker"] = services
    app.session_interface = services.sessions

    init_middleware(app, services.rate_limiter)
    app.register_blueprint(create_blueprint(services.users, services.cars))
    register_error_handlers(app)
    register_commands(app)

    with app.app_context():
        _connect_store(app)

    return app
