# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether the promotion scheduler is running.
"""

import time
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db, PROMOTION_SCHEDULER_KEY
from storefront.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "response_time_ms": round(elapsed_ms, 2)}
    except Exception as e:
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "error": type(e).__name__}


@system_bp.get("/health")
def health():
    database = check_database_health()
    scheduler = current_app.extensions.get(PROMOTION_SCHEDULER_KEY)
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "promotion_scheduler": {
                "enabled": bool(current_app.config.get("PROMOTION_SCHEDULER_ENABLED")),
                "running": bool(scheduler and scheduler.is_running()),
            },
        },
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503
