"""
Report Blueprint — aggregated test reports.

Endpoints:
    GET    /api/v1/reports                  — list (owner's, newest first)
    POST   /api/v1/reports/generate         — create from selected results
    GET    /api/v1/reports/<id>             — detail
    GET    /api/v1/reports/<id>/download    — XLSX export
    DELETE /api/v1/reports/<id>
"""

from flask import Blueprint, g, jsonify, send_file

from ewc_tester.auth import require_user
from ewc_tester.blueprints import get_json_body
from ewc_tester.services import report_service

report_bp = Blueprint("report_bp", __name__, url_prefix="/api/v1/reports")


@report_bp.route("", methods=["GET"])
@require_user
def list_reports():
    return jsonify(report_service.list_reports(g.current_user.id)), 200


@report_bp.route("/generate", methods=["POST"])
@require_user
def generate_report():
    """
    Body: { "title", "description"?, "resultIds": [...], "groupingType"?, "groupingValue"? }
    """
    report = report_service.generate_report(g.current_user.id, get_json_body())
    return jsonify({"success": True, "report": report}), 201


@report_bp.route("/<report_id>", methods=["GET"])
@require_user
def get_report(report_id):
    return jsonify(report_service.get_report(report_id, g.current_user.id)), 200


@report_bp.route("/<report_id>/download", methods=["GET"])
@require_user
def download_report(report_id):
    buf, filename = report_service.export_report_xlsx(report_id, g.current_user.id)
    return send_file(
        buf,
        mimetype=report_service.XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


@report_bp.route("/<report_id>", methods=["DELETE"])
@require_user
def delete_report(report_id):
    report_service.delete_report(report_id, g.current_user.id)
    return jsonify({"success": True}), 200
