# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- One active session per user; a second login returns 409 until logout
- Credential delivered as an httpOnly cookie and duplicated in the body
  for non-cookie clients (Authorization: Bearer)
- 401 responses clear the cookie; 503 (datastore down) leaves it alone
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import (
    auth_failure_response,
    clear_auth_cookie,
    get_request_credential,
    require_auth,
    set_auth_cookie,
)
from ..errors import AuthFailure, StorefrontError, error_response, unexpected_error_response
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Customer self-registration.

    Body: first_name, last_name, email, username, password (min 8 chars).
    Does not log the user in.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register_customer(data)
        return jsonify({
            "success": True,
            "message": "Registration successful.",
            "user": user.to_dict(),
        }), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "register user")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and open the user's single session.

    Accepts "identifier", "username" or "email" plus "password".

    Returns:
    - 200 with user + token, cookie set
    - 400 missing fields / invalid credentials
    - 409 user already has an active session elsewhere
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("identifier") or data.get("username") or data.get("email")
        password = data.get("password")

        result = session_service.login(
            identifier,
            password,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        response = jsonify({
            "success": True,
            "message": "Login successful.",
            "user": result.user.to_dict(),
            "token": result.credential,
            "session": result.session.to_dict(),
        })
        return set_auth_cookie(response, result.credential), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "login user")


@auth_bp.post("/logout")
def logout_route():
    """
    End the current session and clear the cookie.

    401 if no credential was sent; an unverifiable credential is also 401
    and the cookie is cleared.
    """
    try:
        ended = session_service.logout(get_request_credential())
        response = jsonify({
            "success": True,
            "message": "Logged out." if ended else "Session already ended.",
        })
        return clear_auth_cookie(response), 200

    except AuthFailure as e:
        return auth_failure_response(e)
    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "logout user")


@auth_bp.get("/verify-token")
@require_auth
def verify_token_route():
    """Confirm the credential is valid; the decorator refreshes the cookie."""
    context = g.session_context
    return jsonify({
        "success": True,
        "user": context.user.to_dict(),
        "token": context.credential,
    }), 200
