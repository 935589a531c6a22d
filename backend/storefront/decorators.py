# Overview: Request decorators for API routes; auth cookie handling and role checks.

from functools import wraps
from flask import current_app, request, g

from .errors import AuthFailure, BackendUnavailableError, PermissionDenied, error_response
from .services import session_service


def get_request_credential() -> str | None:
    """Auth cookie first, then an Authorization: Bearer header."""
    token = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    if token:
        return token

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def set_auth_cookie(response, credential: str):
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        credential,
        max_age=int(session_service.session_ttl().total_seconds()),
        httponly=True,
        secure=current_app.config["AUTH_COOKIE_SECURE"],
        samesite=current_app.config["AUTH_COOKIE_SAMESITE"],
        path="/",
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        path="/",
        httponly=True,
        secure=current_app.config["AUTH_COOKIE_SECURE"],
        samesite=current_app.config["AUTH_COOKIE_SAMESITE"],
    )
    return response


def auth_failure_response(exc: AuthFailure):
    """401 that also drops the auth cookie."""
    response, status = error_response(exc)
    return clear_auth_cookie(response), status


def require_auth(f):
    """
    Require a valid credential backed by an active session.

    Sets:
    - g.current_user: the authenticated User
    - g.session_context: the full SessionContext

    SECURITY:
    - 401 (cookie cleared) for a missing/invalid credential or no active session
    - 503 (cookie kept) when the session store cannot be reached
    - On success the cookie is re-issued with a fresh expiry
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            context = session_service.verify(get_request_credential())
        except AuthFailure as e:
            return auth_failure_response(e)
        except BackendUnavailableError as e:
            current_app.logger.warning("Session check failed: datastore unavailable")
            return error_response(e)

        g.current_user = context.user
        g.session_context = context

        response = current_app.make_response(f(*args, **kwargs))
        # Only refresh when the handler did not already change the cookie (logout)
        if current_app.config["AUTH_COOKIE_NAME"] not in _cookies_set(response):
            set_auth_cookie(response, context.credential)
        return response

    return decorated_function


def _cookies_set(response) -> set[str]:
    names = set()
    for header in response.headers.getlist("Set-Cookie"):
        names.add(header.split("=", 1)[0].strip())
    return names


def require_admin(f):
    """Require the authenticated user to be an admin. Use under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "current_user"):
            return auth_failure_response(AuthFailure("Authentication required.", code="NO_TOKEN"))
        if not g.current_user.is_admin:
            return error_response(PermissionDenied("Admin access required."))
        return f(*args, **kwargs)
    return decorated_function
