# Overview: Flask API routes for cart operations; parses input and returns JSON responses.

"""Cart API routes. Every route works on the caller's own ACTIVE cart."""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..errors import StorefrontError, error_response, unexpected_error_response
from ..services import cart_service


cart_bp = Blueprint("cart", __name__, url_prefix="/api/product-catalog/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    try:
        cart = cart_service.get_cart(g.current_user.id)
        return jsonify({"success": True, **cart}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "load cart")


@cart_bp.post("/items")
@require_auth
def add_item_route():
    """
    Add a product to the cart (or increase the quantity already there).

    Body: {"product_id": int, "quantity": int > 0}
    """
    try:
        data = request.get_json(silent=True) or {}
        line = cart_service.add_line(
            g.current_user.id,
            data.get("product_id"),
            data.get("quantity", 1),
        )
        return jsonify({"success": True, "item": line.to_dict()}), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "add cart item")


@cart_bp.patch("/items/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        line = cart_service.set_quantity(g.current_user.id, item_id, data.get("quantity"))
        return jsonify({"success": True, "item": line.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "update cart item")


@cart_bp.delete("/items/<int:item_id>")
@require_auth
def remove_item_route(item_id: int):
    try:
        line = cart_service.remove_line(g.current_user.id, item_id)
        return jsonify({"success": True, "message": "Item removed.", "item": line.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "remove cart item")
