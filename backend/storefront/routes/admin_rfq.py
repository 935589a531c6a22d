# Overview: Flask API routes for staff RFQ review and pricing; admin only.

from flask import Blueprint, request, jsonify

from ..decorators import require_admin, require_auth
from ..errors import StorefrontError, error_response, unexpected_error_response
from ..services import rfq_service
from ..workflow import RFQStatus


admin_rfq_bp = Blueprint("admin_rfq", __name__, url_prefix="/api/admin/rfq")


@admin_rfq_bp.post("/<int:rfq_id>/accept")
@require_auth
@require_admin
def accept_rfq_route(rfq_id: int):
    """Take an RFQ into review (PENDING_REVIEW -> UNDER_REVIEW)."""
    try:
        rfq = rfq_service.admin_accept(rfq_id)
        return jsonify({"success": True, "message": "RFQ is now under review.", "rfq": rfq.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "accept RFQ for review")


@admin_rfq_bp.post("/<int:rfq_id>/quote")
@require_auth
@require_admin
def quote_rfq_route(rfq_id: int):
    """
    Price RFQ lines.

    Body:
    {
        "items": [
            {"id": <rfq_item_id>, "quoted_unit_price": "900.00",
             "quoted_total_price": null, "line_lead_time_days": 7,
             "line_notes": "..."}
        ],
        "price_valid_until": "2026-12-31T00:00:00Z"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        rfq = rfq_service.admin_quote(rfq_id, data)
        return jsonify({
            "success": True,
            "message": "Quote sent." if rfq.status == RFQStatus.QUOTE_SENT else "Quote partially sent.",
            "rfq": rfq_service.rfq_detail(rfq),
        }), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "quote RFQ")


@admin_rfq_bp.post("/<int:rfq_id>/reject")
@require_auth
@require_admin
def reject_rfq_route(rfq_id: int):
    try:
        data = request.get_json(silent=True) or {}
        rfq = rfq_service.admin_reject(rfq_id, data.get("reason"))
        return jsonify({"success": True, "message": "RFQ rejected.", "rfq": rfq.to_dict()}), 200

    except StorefrontError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error_response(e, "reject RFQ")
