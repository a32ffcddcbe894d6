from functools import wraps

from flask_jwt_extended import get_jwt_identity, jwt_required, verify_jwt_in_request

from donorsync.errors import AuthorizationError, NotFoundError
from donorsync.extensions import db
from donorsync.models.user_model import User


def current_user():
    """The User behind the bearer token of the current request."""
    user = db.session.get(User, int(get_jwt_identity()))
    if not user or not user.is_active:
        raise NotFoundError('User not found')
    return user


def optional_user():
    verify_jwt_in_request(optional=True)
    identity = get_jwt_identity()
    if identity is None:
        return None
    return db.session.get(User, int(identity))


def admin_required(fn):
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        if not current_user().is_admin:
            raise AuthorizationError('Admin access required')
        return fn(*args, **kwargs)
    return wrapper
