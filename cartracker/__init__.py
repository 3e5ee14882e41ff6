"""Car Tracker: per-user vehicle records behind a session login."""

__version__ = "1.0.0"
