# Overview: Flask API routes for counter-side order handling; admin only.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_admin, require_auth
from ..errors import StorefrontError, error_response, unexpected_error_response
from ..services import order_service


admin_orders_bp = Blueprint("admin_orders", __name__, url_prefix="/api/admin/order")


@admin_orders_bp.post("/<int:order_id>/ready-for-pickup")
@require_auth
@require_admin
def ready_for_pickup_route(order_id: int):
    try:
        order = order_service.mark_ready(order_id)
        return jsonify({
            "success": True,
            "message": "Order is ready for pickup.",
            "order": order_service.order_detail(order),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "mark order ready")


@admin_orders_bp.post("/<int:order_id>/pay-and-complete")
@require_auth
@require_admin
def pay_and_complete_route(order_id: int):
    """
    Record cash payment and complete the order.

    Body: {"cash_received": 2000}
    Response includes change_given.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.pay_and_complete(
            order_id,
            data.get("cash_received"),
            cashier_user_id=g.current_user.id,
        )
        return jsonify({
            "success": True,
            "message": "Payment recorded. Order completed.",
            "change": f"{order.change_given:.2f}",
            "order": order_service.order_detail(order),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "complete order payment")


@admin_orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_admin
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(order_id, data.get("reason"))
        return jsonify({
            "success": True,
            "message": "Order cancelled.",
            "order": order_service.order_detail(order),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "cancel order")
