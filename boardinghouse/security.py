import logging
from functools import wraps

from flask import jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

logger = logging.getLogger(__name__)

STAFF_ROLES = ['admin', 'staff']


def require_role(allowed_roles):
    """Usage: @require_role(['admin', 'staff']). Reads the ``role`` claim of the access token."""
    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            claims = get_jwt() or {}
            user_role = claims.get("role")
            if user_role not in allowed_roles:
                logger.warning("forbidden: user %s with role %r on %s %s",
                               get_jwt_identity(), user_role, request.method, request.path)
                return jsonify({
                    "error": "insufficient_permissions",
                    "message": "You don't have permission to access this resource"
                }), 403
            return f(*args, **kwargs)
        return wrapper
    return decorator


def current_actor_id():
    """Acting user id from the token identity, or None when it is not numeric."""
    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        return None
