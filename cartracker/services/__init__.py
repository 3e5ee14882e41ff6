from flask import redirect, url_for
from flask_bcrypt import Bcrypt
from flask_login import LoginManager

from ..models import db
from ..models.user import User

# Bcrypt for password hashing
bcrypt = Bcrypt()

# Login manager for Flask-Login; the session only carries the user id
login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id: str):
    """Tell Flask-Login how to load a user from the database."""
    return db.session.get(User, user_id)


@login_manager.unauthorized_handler
def redirect_to_entry():
    """Strict gate: anonymous requests go back to the login page, no flash."""
    return redirect(url_for("web.index"))
