# pdv/auth/decorators.py
from __future__ import annotations

from functools import wraps

from flask_login import current_user, login_required

from pdv.core.services import require_role


def roles_required(*roles: str):
    """login_required + checagem de papel (403 se o papel não bate)."""
    def decorator(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            require_role(current_user, roles)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
