"""Server-side session storage, cookie attributes and expiry."""

from datetime import timedelta

from sqlalchemy.exc import OperationalError

from cartracker.models import db, utcnow
from cartracker.models.session import StoredSession

COOKIE = "cartracker.sid"


def session_rows(app):
    with app.app_context():
        return [row.id for row in StoredSession.query.all()]


class TestSessionCookie:
    def test_cookie_attributes(self, client, login):
        response = login(client)
        header = next(
            value for value in response.headers.getlist("Set-Cookie") if value.startswith(COOKIE)
        )
        assert "HttpOnly" in header
        assert "SameSite=Lax" in header
        assert "Max-Age=28800" in header

    def test_cookie_carries_only_session_id(self, app, client, login):
        login(client)
        (sid,) = session_rows(app)
        value = client.get_cookie(COOKIE).value
        assert value.startswith(sid + ".")
        assert "alice" not in value

    def test_anonymous_page_view_stores_nothing(self, app, client):
        client.get("/")
        assert session_rows(app) == []
        assert client.get_cookie(COOKIE) is None

    def test_tampered_cookie_is_anonymous(self, app, client, login):
        login(client)
        (sid,) = session_rows(app)
        client.set_cookie(COOKIE, sid + ".forged")
        response = client.get("/dashboard")
        assert response.status_code == 302


class TestSessionLifecycle:
    def test_logout_deletes_stored_session(self, app, client, login):
        login(client)
        assert len(session_rows(app)) == 1
        client.post("/logout")
        assert session_rows(app) == []

    def test_login_rotates_session_id(self, app, client, login):
        # an empty login attempt leaves a flash, which creates a session
        client.post("/login", data={"username": "", "password": ""})
        (before,) = session_rows(app)

        login(client)
        (after,) = session_rows(app)
        assert after != before

    def test_demo_login_rotates_session_id(self, app, client):
        client.post("/login", data={"username": "", "password": ""})
        (before,) = session_rows(app)

        client.get("/data")
        (after,) = session_rows(app)
        assert after != before

    def test_expired_session_is_absent(self, app, client, login):
        login(client)
        with app.app_context():
            row = StoredSession.query.one()
            row.expires_at = utcnow() - timedelta(minutes=1)
            db.session.commit()

        response = client.get("/dashboard")
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/")
        assert session_rows(app) == []

    def test_activity_extends_expiry(self, app, client, login):
        login(client)
        with app.app_context():
            row = StoredSession.query.one()
            row.expires_at = utcnow() + timedelta(minutes=5)
            db.session.commit()

        client.get("/dashboard")
        with app.app_context():
            expires_at = StoredSession.query.one().expires_at
        remaining = expires_at.replace(tzinfo=None) - utcnow().replace(tzinfo=None)
        assert remaining > timedelta(hours=7)

    def test_purge_expired(self, app, services):
        with app.app_context():
            db.session.add(StoredSession(id="old", data="{}", expires_at=utcnow() - timedelta(hours=1)))
            db.session.add(StoredSession(id="live", data="{}", expires_at=utcnow() + timedelta(hours=1)))
            db.session.commit()
            assert services.sessions.purge_expired() == 1
            assert [row.id for row in StoredSession.query.all()] == ["live"]

    def test_purge_command(self, app):
        with app.app_context():
            db.session.add(StoredSession(id="old", data="{}", expires_at=utcnow() - timedelta(hours=1)))
            db.session.commit()
        result = app.test_cli_runner().invoke(args=["purge-sessions"])
        assert "Removed 1 expired session(s)." in result.output


class BrokenSerializer:
    def dumps(self, value):
        raise OperationalError("UPDATE sessions", {}, Exception("database is locked"))


class TestSessionStoreFailure:
    def test_response_survives_without_cookie(self, app, client, login, services, monkeypatch):
        monkeypatch.setattr(services.sessions, "serializer", BrokenSerializer())
        response = login(client)
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/dashboard")
        assert client.get_cookie(COOKIE) is None
        assert session_rows(app) == []
