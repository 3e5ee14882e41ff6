from dataclasses import dataclass
from functools import wraps

from flask_login import current_user, login_required, login_user

from .auth import UserDirectory
from .sessions import rotate_session

# Strict gate: anonymous requests are redirected by login_manager.unauthorized_handler
strict = login_required


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller, resolved once per request and passed down."""

    user_id: str
    username: str


def current_context() -> RequestContext:
    return RequestContext(user_id=current_user.id, username=current_user.username)


def demo_gate(users: UserDirectory):
    """
    Permissive gate for the JSON API.

    Anonymous callers are logged in as the shared demo account, which is
    created on first use. The demo identity then sticks to their session.
    """

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                rotate_session()
                login_user(users.ensure_demo())
            return view(*args, **kwargs)

        return wrapper

    return decorator
