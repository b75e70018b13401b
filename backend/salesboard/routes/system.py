# Overview: Flask API routes for health, database info and the admin ledger wipe.

"""
System endpoints.

DELETE /api/database/clear wipes transactions, aggregates and upload
history in one step; users and sessions are kept.
"""

import time
from flask import Blueprint, jsonify, current_app, g
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models import ROLE_ADMIN, User
from ..repositories import PersistenceError, get_repository
from ..services import reporting_service
from salesboard.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"users": user_count},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_ledger_health() -> dict:
    start_time = time.time()
    repository = get_repository()
    try:
        orders = repository.count_transactions()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"backend": repository.backend_name, "orders": orders},
        }
    except (SQLAlchemyError, PersistenceError):
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Ledger health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Ledger store error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: all checks healthy
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "ledger": check_ledger_health(),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }
    return response, 200 if healthy else 503


@system_bp.get("/database/info")
@require_auth
def database_info_route():
    return jsonify(reporting_service.get_database_info(repository=get_repository())), 200


@system_bp.delete("/database/clear")
@require_auth
@require_role(ROLE_ADMIN)
def clear_database_route():
    try:
        get_repository().clear_all()
    except PersistenceError:
        current_app.logger.exception("Failed to clear database")
        return jsonify({"error": "Failed to clear database"}), 500

    current_app.logger.warning("Ledger cleared by %s", g.current_user.username)
    return jsonify({"success": True, "message": "All sales data cleared; users were kept"}), 200
