# Overview: Flask API routes for a customer's own orders.

from flask import Blueprint, jsonify, g

from ..decorators import require_auth
from ..errors import StorefrontError, error_response, unexpected_error_response
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("/list")
@require_auth
def list_orders_route():
    try:
        orders = order_service.list_orders(g.current_user.id)
        return jsonify({"success": True, "orders": [order.to_dict() for order in orders]}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "list orders")


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.current_user.id, order_id)
        return jsonify({"success": True, "order": order_service.order_detail(order)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "load order")
