"""Entity JSON API controllers (thin, schema-validated)."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from metacatalog.core.patching.patch import EntityPatch
from metacatalog.core.utils.decorators import current_caller
from metacatalog.platform.api.mappers import entity_response, fields_from_payload, record_response
from metacatalog.platform.api.schemas import CreateEntityRequest, PatchRequest
from metacatalog.platform.wiring import catalog_services

entity_api_bp = Blueprint("entity_api", __name__)


@entity_api_bp.get("/<entity_type>")
@jwt_required()
def list_entities(entity_type: str):
    services = catalog_services()
    table = services.registry.fields(entity_type)
    payload = [entity_response(s, table) for s in services.persistence.list(entity_type)]
    return jsonify({"ok": True, "entities": payload})


@entity_api_bp.post("/<entity_type>")
@jwt_required()
def create_entity(entity_type: str):
    payload = request.get_json(silent=True) or {}
    try:
        data = CreateEntityRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_context=False)}), 400
    services = catalog_services()
    table = services.registry.fields(entity_type)
    outcome = services.patch_service.create_entity(
        entity_type, data.name, fields_from_payload(data.attributes, table), current_caller()
    )
    return jsonify({"ok": True, "entity": entity_response(outcome.snapshot, table)}), 201


@entity_api_bp.get("/<entity_type>/<name>")
@jwt_required()
def get_entity(entity_type: str, name: str):
    services = catalog_services()
    snapshot = services.patch_service.get_entity(entity_type, name)
    return jsonify({"ok": True, "entity": entity_response(snapshot, services.registry.fields(entity_type))})


@entity_api_bp.patch("/<entity_type>/<name>")
@jwt_required()
def patch_entity(entity_type: str, name: str):
    payload = request.get_json(silent=True) or {}
    try:
        data = PatchRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"ok": False, "error": "validation_error", "details": exc.errors(include_context=False)}), 400
    services = catalog_services()
    table = services.registry.fields(entity_type)
    patch = EntityPatch.from_payload(data.model_dump(), table)
    if patch.is_empty:
        return jsonify({"ok": False, "error": "validation_error", "details": "patch changes nothing"}), 400
    outcome = services.patch_service.apply_patch(entity_type, name, patch, current_caller())
    return jsonify(
        {
            "ok": True,
            "entity": entity_response(outcome.snapshot, table),
            "change_record": record_response(outcome.record),
            "consolidated": outcome.consolidated,
        }
    )


@entity_api_bp.get("/<entity_type>/<name>/versions")
@jwt_required()
def list_versions(entity_type: str, name: str):
    services = catalog_services()
    records = services.patch_service.list_versions(entity_type, name)
    return jsonify({"ok": True, "versions": [record_response(r) for r in records]})
