import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError

from ..models import db
from ..models.user import User
from . import bcrypt

logger = logging.getLogger(__name__)

DEMO_USERNAME = "demo"
DEMO_PASSWORD = "demo"


class UserDirectory:
    """Account lookups, creation and password checks."""

    def find(self, username: str) -> Optional[User]:
        return User.query.filter_by(username=username).first()

    def hash_password(self, password: str) -> str:
        return bcrypt.generate_password_hash(password).decode("utf-8")

    def verify(self, user: User, password: str) -> bool:
        # bcrypt compares digests in constant time
        return bcrypt.check_password_hash(user.password_hash, password)

    def create(self, username: str, password: str) -> Optional[User]:
        """
        Insert a new account.

        Returns None when another request committed the same username first;
        the unique index on users.username decides the winner.
        """
        user = User(username=username, password_hash=self.hash_password(password))
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info("Username %r was registered concurrently", username)
            return None
        logger.info("Created account %r", username)
        return user

    def login_or_register(self, username: str, password: str) -> Tuple[Optional[User], bool]:
        """
        Log in with the given credentials, creating the account on first use.

        Returns (user, created). user is None when the username exists and
        the password does not match; the stored account is left untouched.
        Raises ValueError if username or password is empty.
        """
        username = (username or "").strip()
        if not username or not password:
            raise ValueError("Username and password required.")

        user = self.find(username)
        if user is None:
            created = self.create(username, password)
            if created is not None:
                return created, True
            # lost the race: the winner's password decides
            user = self.find(username)

        if not self.verify(user, password):
            logger.info("Rejected password for %r", username)
            return None, False

        return user, False

    def ensure_demo(self) -> User:
        """Return the shared demo account, creating it on first use."""
        demo = self.find(DEMO_USERNAME)
        if demo is None:
            demo = self.create(DEMO_USERNAME, DEMO_PASSWORD) or self.find(DEMO_USERNAME)
        return demo
