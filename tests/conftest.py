"""Pytest configuration and fixtures."""

import pytest

from cartracker.app import create_app
from cartracker.config import TestingConfig
from cartracker.models import db


@pytest.fixture
def civic() -> dict:
    """A valid car payload as a JSON client would send it."""
    return {
        "model": "Civic",
        "year": 2020,
        "mpg": 35,
        "fuel": "gasoline",
        "transmission": "auto",
    }


@pytest.fixture
def app():
    """Application backed by a fresh in-memory SQLite database."""
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def other_client(app):
    """A second browser, for acting as a different user."""
    return app.test_client()


@pytest.fixture
def login():
    """Log a test client in (or register it) through the login form."""

    def _login(client, username: str = "alice", password: str = "secret"):
        return client.post("/login", data={"username": username, "password": password})

    return _login


@pytest.fixture
def services(app):
    return app.extensions["cartracker"]
