from . import db, utcnow


class StoredSession(db.Model):
    """Server-side session row keyed by the id carried in the cookie."""

    __tablename__ = "sessions"

    id = db.Column(db.String(64), primary_key=True)
    data = db.Column(db.Text, nullable=False, default="{}")
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<StoredSession {self.id[:8]}>"
