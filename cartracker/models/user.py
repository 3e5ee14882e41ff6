from flask_login import UserMixin

from . import db, new_id, utcnow  # import the db object from models/__init__.py


class User(UserMixin, db.Model):
    """Account that owns cars; username doubles as the login field."""

    __tablename__ = "users"

    id = db.Column(db.String(32), primary_key=True, default=new_id)

    # unique index is what settles two first-time logins racing on one name
    username = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # store only the password hash, never the plain text password
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    cars = db.relationship(
        "Car", backref="owner", lazy=True, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User {self.username}>"
