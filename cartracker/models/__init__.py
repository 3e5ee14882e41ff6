import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy instance, bound to the app in create_app()
db = SQLAlchemy()


def new_id() -> str:
    """Opaque identifier used for users, cars and sessions."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


from .user import User  # noqa: E402,F401
from .car import Car  # noqa: E402,F401
from .session import StoredSession  # noqa: E402,F401
