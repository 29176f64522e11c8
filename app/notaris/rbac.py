from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g

from app.notaris.constants import ADMIN_ROLES, ROLE_SUPER_ADMIN, STAFF_ROLES
from app.notaris.models import User


def current_user() -> User | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active or user.deleted_at is not None:
        return None
    return user


def user_has_role(user: User | None, *roles: str) -> bool:
    return bool(user and user.is_active and user.deleted_at is None and user.role in roles)


def is_admin(user: User | None) -> bool:
    return user_has_role(user, *ADMIN_ROLES)


def is_staff(user: User | None) -> bool:
    return user_has_role(user, *STAFF_ROLES)


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_user() is None:
            abort(401, description="Unauthorized")
        return fn(*args, **kwargs)

    return wrapped


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            # Unauthenticated → 401; authenticated but wrong role → 403
            if user is None:
                abort(401, description="Unauthorized")
            if user.role not in roles:
                g.missing_role = "|".join(roles)
                abort(403, description="Forbidden")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_feature(*feature_keys: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Gate a handler on license feature flags. Any one of the keys is enough.
    Anonymous callers pass through; pair with require_login/require_role.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            from app.notaris.db import db_session
            from app.notaris.modules.feature_flags.service import is_feature_enabled

            user = current_user()
            if user is not None and user.role != ROLE_SUPER_ADMIN:
                s = db_session()
                if not any(is_feature_enabled(s, user.role, key) for key in feature_keys):
                    g.missing_feature = ",".join(feature_keys)
                    abort(403, description="Feature is not available in your license package")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
