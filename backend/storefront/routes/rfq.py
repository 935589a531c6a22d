# Overview: Flask API routes for customer RFQ operations; parses input and returns JSON responses.

"""
Customer RFQ API routes

Customers submit RFQs, follow their status, and decide on quotes. Every
lookup is scoped to the caller; someone else's RFQ is a 404.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..errors import StorefrontError, error_response, unexpected_error_response
from ..services import order_service, rfq_service


rfq_bp = Blueprint("rfq", __name__, url_prefix="/api/product-catalog/rfq")


@rfq_bp.post("")
@require_auth
def submit_rfq_route():
    """
    Submit an RFQ.

    Body:
    {
        "items": [{"product_id": 1, "quantity": 2, "cart_item_id": 7}, ...],
        "company_name": ..., "contact_name": ..., "contact_email": ...,
        "contact_phone": ..., "use_case": ..., "site_info": ...,
        "additional_notes": ...
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        rfq = rfq_service.submit(g.current_user.id, data)
        return jsonify({
            "success": True,
            "message": "RFQ submitted.",
            "rfq": rfq_service.rfq_detail(rfq),
        }), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "submit RFQ")


@rfq_bp.get("/list")
@require_auth
def list_rfqs_route():
    try:
        rfqs = rfq_service.list_rfqs(g.current_user.id)
        return jsonify({"success": True, "rfqs": [rfq.to_summary() for rfq in rfqs]}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "list RFQs")


@rfq_bp.get("/<int:rfq_id>")
@require_auth
def get_rfq_route(rfq_id: int):
    try:
        rfq = rfq_service.get_rfq(g.current_user.id, rfq_id)
        return jsonify({"success": True, "rfq": rfq_service.rfq_detail(rfq)}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "load RFQ")


@rfq_bp.patch("/<int:rfq_id>/cancel")
@require_auth
def cancel_rfq_route(rfq_id: int):
    """Withdraw an RFQ before it is fully quoted."""
    try:
        data = request.get_json(silent=True) or {}
        rfq = rfq_service.customer_cancel(g.current_user.id, rfq_id, data.get("reason"))
        return jsonify({
            "success": True,
            "message": "RFQ cancelled.",
            "rfq": rfq.to_dict(),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "cancel RFQ")


@rfq_bp.post("/<int:rfq_id>/reject")
@require_auth
def reject_quote_route(rfq_id: int):
    try:
        data = request.get_json(silent=True) or {}
        rfq = rfq_service.customer_reject(g.current_user.id, rfq_id, data.get("reason"))
        return jsonify({
            "success": True,
            "message": "Quote rejected.",
            "rfq": rfq.to_dict(),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "reject quote")


@rfq_bp.post("/<int:rfq_id>/accept")
@require_auth
def accept_quote_route(rfq_id: int):
    """
    Accept a quote; creates the order and reserves stock.

    Returns 400 when the RFQ is not in a quoted state, has nothing priced,
    or a product is no longer in stock. Nothing is reserved on failure.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = rfq_service.customer_accept(
            g.current_user.id,
            rfq_id,
            pickup_location=data.get("pickup_location"),
        )
        return jsonify({
            "success": True,
            "message": "Quote accepted. Your order has been created.",
            "order": order_service.order_detail(order),
        }), 201

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "accept quote")
