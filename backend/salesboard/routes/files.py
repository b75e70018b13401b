# Overview: Flask API routes for spreadsheet uploads and upload history.

"""
File Routes

POST /api/files/upload takes a multipart "file" (.xlsx or .xls). The
request body ceiling is Flask's MAX_CONTENT_LENGTH (413 when exceeded).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN
from ..repositories import get_repository
from ..services import ingest_service, reporting_service
from ..services.ingest_service import AuthorizationError, IngestionFailed
from ..services.workbook_reader import StructuralError, is_allowed_file


files_bp = Blueprint("files", __name__, url_prefix="/api/files")


@files_bp.post("/upload")
@require_auth
@require_role(ROLE_ADMIN)
def upload_route():
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    upload = request.files["file"]
    filename = upload.filename or ""
    if not filename:
        return jsonify({"error": "file is required"}), 400
    if not is_allowed_file(filename):
        return jsonify({"error": "Only .xlsx and .xls files are allowed"}), 400

    data = upload.stream.read()
    user = g.current_user

    try:
        stats = ingest_service.ingest_upload(
            data,
            file_name=filename,
            file_size=len(data),
            uploader_id=user.id,
            uploader_role=user.role,
            repository=get_repository(),
            **ingest_service.ingest_options(current_app.config),
        )
    except AuthorizationError as e:
        return jsonify({"error": str(e)}), 403
    except StructuralError as e:
        return jsonify({"error": str(e)}), 400
    except IngestionFailed as e:
        current_app.logger.error("Upload of %s failed at row %s", filename, e.row_index)
        return jsonify({
            "success": False,
            "error": "Storage failure during ingestion",
            "row_index": e.row_index,
            "stats": e.stats.to_dict(),
        }), 500
    except Exception:
        current_app.logger.exception("Failed to ingest %s", filename)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "stats": stats.to_dict(),
        "message": stats.summary_message(),
        "file": {
            "file_id": stats.file_id,
            "file_name": filename,
            "size": len(data),
        },
    }), 200


@files_bp.get("")
@require_auth
def list_files_route():
    records = reporting_service.list_uploads(repository=get_repository())
    return jsonify({"files": [r.to_dict() for r in records]}), 200
