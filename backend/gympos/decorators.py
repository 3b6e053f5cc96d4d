# Overview: Request decorators for API routes; authentication and role checks.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service
from .models.auth import ROLE_SUPER_ADMIN


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'gym_id')


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.gym_id: The gym of the session (None only for super admins)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account or gym deactivated
    - Gym staff session without a gym
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "UNAUTHENTICATED"}), 401

        if context.gym_id is None and context.user.role != ROLE_SUPER_ADMIN:
            current_app.logger.warning(
                "Session %s of user %s has no gym", context.session.id, context.user.id
            )
            return jsonify({"error": "Invalid session: missing tenant context", "code": "UNAUTHENTICATED"}), 401

        g.current_user = context.user
        g.gym_id = context.gym_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the authenticated user to hold one of the given roles; super admins always pass."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401

            role = g.current_user.role
            if role != ROLE_SUPER_ADMIN and role not in roles:
                current_app.logger.warning(
                    "Role %s denied on %s %s (requires %s)",
                    role, request.method, request.path, ", ".join(roles),
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "details": {"required_roles": list(roles)},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
