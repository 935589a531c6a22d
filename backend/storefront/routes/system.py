# Overview: Flask API routes for system health.

"""
System health endpoint.

Reports datastore reachability and a few counters useful when debugging a
deployment. Returns 503 when the database cannot be queried.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import UserSession, RFQ
from ..time_utils import to_utc_z, utcnow
from ..workflow import QUOTED_STATUSES

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a couple of cheap counts."""
    start_time = time.time()
    try:
        active_sessions = db.session.query(func.count(UserSession.id)).filter(
            UserSession.is_active.is_(True)
        ).scalar()
        open_quotes = db.session.query(func.count(RFQ.id)).filter(
            RFQ.status.in_(list(QUOTED_STATUSES))
        ).scalar()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "open_quotes": open_quotes,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.warning("Database health check failed", exc_info=True)
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health_route():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "success": healthy,
        "status": "ok" if healthy else "unavailable",
        "time": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503
