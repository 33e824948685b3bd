"""CSV import/export and bulk job controllers."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from metacatalog.core.utils.decorators import current_caller, require_roles
from metacatalog.platform.api.schemas import BulkQuery
from metacatalog.platform.wiring import catalog_services

bulk_api_bp = Blueprint("bulk_api", __name__)


def _query():
    return BulkQuery.model_validate(
        {
            "team": request.args.get("team") or None,
            "dryRun": request.args.get("dryRun", "false").lower() in ("1", "true", "yes"),
        }
    )


def _csv_body() -> str:
    return request.get_data(as_text=True) or ""


@bulk_api_bp.get("/<entity_type>/documentation/csv")
@jwt_required()
def csv_documentation(entity_type: str):
    return jsonify({"ok": True, "documentation": catalog_services().bulk_service.documentation(entity_type)})


@bulk_api_bp.put("/<entity_type>/import")
@jwt_required()
def import_csv(entity_type: str):
    try:
        query = _query()
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_context=False)}), 400
    result = catalog_services().bulk_service.import_csv(
        entity_type,
        _csv_body(),
        scope=query.team,
        dry_run=query.dryRun,
        caller=current_caller(),
    )
    return jsonify({"ok": True, "result": result.to_dict()})


@bulk_api_bp.get("/<entity_type>/export")
@jwt_required()
def export_csv(entity_type: str):
    try:
        query = _query()
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_context=False)}), 400
    text = catalog_services().bulk_service.export_csv(entity_type, scope=query.team)
    return text, 200, {"Content-Type": "text/csv; charset=utf-8"}


@bulk_api_bp.put("/<entity_type>/importAsync")
@jwt_required()
def import_csv_async(entity_type: str):
    try:
        query = _query()
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_context=False)}), 400
    job_id = catalog_services().bulk_service.submit_import(
        entity_type,
        _csv_body(),
        scope=query.team,
        dry_run=query.dryRun,
        caller=current_caller(),
    )
    return jsonify({"ok": True, "job_id": job_id}), 202


@bulk_api_bp.get("/<entity_type>/exportAsync")
@jwt_required()
def export_csv_async(entity_type: str):
    try:
        query = _query()
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_context=False)}), 400
    job_id = catalog_services().bulk_service.submit_export(entity_type, scope=query.team)
    return jsonify({"ok": True, "job_id": job_id}), 202


@bulk_api_bp.get("/jobs/<job_id>")
@jwt_required()
def job_status(job_id: str):
    job = catalog_services().bulk_service.get_job_status(job_id)
    return jsonify({"ok": True, "job": job.to_dict()})


@bulk_api_bp.post("/jobs/<job_id>/cancel")
@require_roles(["admin"])
def cancel_job(job_id: str):
    job = catalog_services().bulk_service.cancel_job(job_id)
    return jsonify({"ok": True, "job": job.to_dict()})
