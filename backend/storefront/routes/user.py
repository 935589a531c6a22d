# Overview: Flask API routes for the signed-in user's profile.

from flask import Blueprint, jsonify, g

from ..decorators import require_auth


user_bp = Blueprint("user", __name__, url_prefix="/api/user")


@user_bp.get("/profile")
@require_auth
def profile_route():
    return jsonify({
        "success": True,
        "user": g.current_user.to_dict(),
        "session": g.session_context.session.to_dict(),
    }), 200
