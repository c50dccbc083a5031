"""Middleware for the current user and role checks at the HTTP boundary."""
from functools import wraps
from flask import session, g
from marketplace.database import get_session
from marketplace.models import User, UserRole
from marketplace.exceptions import UnauthorizedError, ForbiddenError


def load_current_user():
    """
    Load the current user into g (Flask's per-request global).

    Login is handled elsewhere; this only trusts a user_id already in the session.
    """
    g.user = None

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            if not db_session:
                return
            user = db_session.query(User).filter_by(id=user_id, is_active=True).first()
            if user:
                g.user = user
                g.user_id = user.id
    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        from flask import current_app
        current_app.logger.error(f"Error in load_current_user: {e}")


def require_login(f):
    """Decorator: require an authenticated user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthorizedError()
        return f(*args, **kwargs)
    return decorated_function


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role(UserRole.SUPER_ADMIN, UserRole.COMPANY_ADMIN)
    """
    allowed = {getattr(role, 'value', role) for role in allowed_roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get('user')
            if user is None:
                raise UnauthorizedError()
            if user.role not in allowed:
                raise ForbiddenError('You do not have permission for this action')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def can_access_order(user, order, write: bool = False) -> bool:
    """
    Platform admins and the owning company may read and write.
    The ordering shop owner and the assigned driver may read.
    """
    if user is None:
        return False
    if user.is_platform_admin:
        return True
    if user.role == UserRole.COMPANY_ADMIN.value:
        return user.company_id is not None and user.company_id == order.company_id
    if write:
        return False
    if user.role == UserRole.SHOP_OWNER.value:
        return order.user_id == user.id
    if user.role == UserRole.DRIVER.value:
        return order.assigned_driver_id == user.id
    return False


def ensure_order_access(user, order, write: bool = False) -> None:
    """Raise ForbiddenError unless the user may see (or change) the order."""
    if not can_access_order(user, order, write=write):
        raise ForbiddenError('You do not have access to this order')


def company_scope(user):
    """company_id to restrict company-scoped queries to, or None for platform admins."""
    if user.is_platform_admin:
        return None
    if user.company_id is None:
        raise ForbiddenError('User is not linked to a company')
    return user.company_id
