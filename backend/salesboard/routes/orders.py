# Overview: Flask API routes for the order ledger; filtered listing and headline statistics.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth
from ..repositories import get_repository
from ..services import reporting_service
from ..services.reporting_service import ReportError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        orders = reporting_service.list_orders(
            repository=get_repository(),
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
            payment_type=request.args.get("paymentType"),
            product=request.args.get("product"),
        )
    except ReportError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200


@orders_bp.get("/stats")
@require_auth
def stats_route():
    return jsonify(reporting_service.get_statistics(repository=get_repository())), 200
