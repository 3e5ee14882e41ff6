import logging
from typing import Any, Mapping

from flask import (
    Blueprint,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from flask_login import current_user, login_user, logout_user
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .models import db
from .services.auth import UserDirectory
from .services.cars import CarService, PersistenceError
from .services.gates import current_context, demo_gate, strict
from .services.serializers import cars_to_json, user_to_json
from .services.sessions import rotate_session
from .services.validation import CarValidationError, FuelType, Transmission

logger = logging.getLogger(__name__)


def _payload() -> Mapping[str, Any]:
    """Request body as a mapping: JSON object if sent as JSON, else the form."""
    if request.is_json:
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else {}
    return request.form


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def _car_id(payload: Mapping[str, Any]) -> str:
    value = payload.get("id")
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value).strip()


def create_blueprint(users: UserDirectory, cars: CarService) -> Blueprint:
    """Build every route around the given service handles."""

    bp = Blueprint("web", __name__)
    permissive = demo_gate(users)

    # ---------------------------------------------------------
    # Auth routes
    # ---------------------------------------------------------

    @bp.route("/", methods=["GET"])
    def index():
        if current_user.is_authenticated:
            return redirect(url_for("web.dashboard"))
        return render_template("login.html", title="Login • Car Tracker")

    @bp.route("/login", methods=["POST"])
    def login():
        payload = _payload()
        username = _text(payload, "username").strip()
        password = _text(payload, "password")

        if not username or not password:
            flash("Username and password required.", "danger")
            return redirect(url_for("web.index"))

        user, created = users.login_or_register(username, password)
        if user is None:
            flash("Incorrect password.", "danger")
            return redirect(url_for("web.index"))

        rotate_session()
        login_user(user)
        if created:
            flash("New account created and logged in.", "success")
        return redirect(url_for("web.dashboard"))

    @bp.route("/logout", methods=["POST"])
    def logout():
        logout_user()
        session.clear()
        return redirect(url_for("web.index"))

    # ---------------------------------------------------------
    # Dashboard (HTML form surface)
    # ---------------------------------------------------------

    @bp.route("/dashboard", methods=["GET"])
    @strict
    def dashboard():
        ctx = current_context()
        return render_template(
            "dashboard.html",
            title="Dashboard • Car Tracker",
            user=current_user,
            cars=cars.list_for(ctx),
            fuels=list(FuelType),
            transmissions=list(Transmission),
        )

    @bp.route("/cars", methods=["POST"])
    @strict
    def create_car():
        try:
            cars.add(current_context(), request.form)
        except CarValidationError as e:
            flash(str(e), "danger")
        return redirect(url_for("web.dashboard"))

    @bp.route("/cars/<car_id>/update", methods=["POST"])
    @strict
    def update_car(car_id: str):
        try:
            cars.update(current_context(), car_id, request.form)
        except CarValidationError as e:
            flash(str(e), "danger")
        return redirect(url_for("web.dashboard"))

    @bp.route("/cars/<car_id>/delete", methods=["POST"])
    @strict
    def delete_car(car_id: str):
        cars.delete(current_context(), car_id)
        return redirect(url_for("web.dashboard"))

    # ---------------------------------------------------------
    # JSON API
    # ---------------------------------------------------------

    @bp.route("/api/me", methods=["GET"])
    @strict
    def api_me():
        ctx = current_context()
        return jsonify(
            {
                "user": user_to_json(current_user._get_current_object()),
                "cars": cars_to_json(cars.list_for(ctx)),
            }
        )

    @bp.route("/data", methods=["GET"])
    @permissive
    def api_data():
        return jsonify(cars_to_json(cars.list_for(current_context())))

    @bp.route("/add", methods=["POST"])
    @permissive
    def api_add():
        try:
            cars.add(current_context(), _payload(), require_choices=True)
        except CarValidationError as e:
            return jsonify({"error": str(e)}), 400
        except PersistenceError:
            return jsonify({"error": "Failed to add car."}), 500
        return redirect(url_for("web.dashboard"))

    @bp.route("/modify", methods=["POST"])
    @permissive
    def api_modify():
        payload = _payload()
        car_id = _car_id(payload)
        if not car_id:
            return jsonify({"error": "Missing id"}), 400

        ctx = current_context()
        try:
            cars.update(ctx, car_id, payload)
        except CarValidationError as e:
            return jsonify({"error": str(e)}), 400
        except PersistenceError:
            return jsonify({"error": "Failed to update car."}), 500
        return jsonify(cars_to_json(cars.list_for(ctx)))

    @bp.route("/delete", methods=["POST"])
    @permissive
    def api_delete():
        car_id = _car_id(_payload())
        if not car_id:
            return jsonify({"error": "Missing id"}), 400

        ctx = current_context()
        try:
            cars.delete(ctx, car_id)
        except PersistenceError:
            return jsonify({"error": "Failed to delete car."}), 500
        return jsonify(cars_to_json(cars.list_for(ctx)))

    # ---------------------------------------------------------
    # Health
    # ---------------------------------------------------------

    @bp.route("/healthz", methods=["GET"])
    def healthz():
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Health check could not reach the database")
            return jsonify({"status": "unavailable"}), 503
        return jsonify({"status": "ok"})

    return bp
