# Overview: Flask API routes for reporting; rollups, period drill-down and .xlsx export.

from flask import Blueprint, request, jsonify, send_file, current_app

from ..decorators import require_auth
from ..repositories import get_repository
from ..services import export_service, reporting_service
from ..services.reporting_service import ReportError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@reports_bp.get("/data")
@require_auth
def reports_data_route():
    return jsonify(reporting_service.get_reports_data(repository=get_repository())), 200


@reports_bp.get("/details")
@require_auth
def period_details_route():
    """?period=YYYY|YYYY_MM|YYYY_MM_DD|all&type=ALL|CASH|QR|VIP|CARD|RETURN|UNKNOWN"""
    try:
        details = reporting_service.get_period_details(
            request.args.get("period"),
            request.args.get("type") or reporting_service.ALL_PAYMENT_TYPES,
            repository=get_repository(),
        )
    except ReportError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"orders": [t.to_dict() for t in details], "count": len(details)}), 200


@reports_bp.get("/export")
@require_auth
def export_route():
    try:
        filters = reporting_service.build_order_filter(
            request.args.get("startDate"),
            request.args.get("endDate"),
            request.args.get("paymentType"),
            request.args.get("product"),
        )
        buffer, filename = export_service.export_report(repository=get_repository(), filters=filters)
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to export report")
        return jsonify({"error": "Failed to export report"}), 500

    return send_file(buffer, mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename)
