# Overview: Flask API routes for tenant sequence counters (tracking numbers, manifest ids).

from flask import Blueprint, request, jsonify, current_app

from ..services import sequence_service
from ..validation import DOMAIN_ERRORS, parse_int
from ..decorators import require_actor


sequences_bp = Blueprint("sequences", __name__, url_prefix="/api/sequences")


@sequences_bp.get("/<string:tenant_key>/<string:kind>")
@require_actor
def get_sequence_route(tenant_key: str, kind: str):
    try:
        counter = sequence_service.get_counter(tenant_key, kind.upper())
        return jsonify({"sequence": counter.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status


@sequences_bp.put("/<string:tenant_key>/<string:kind>")
@require_actor
def update_sequence_route(tenant_key: str, kind: str):
    """
    Request body:
        {"prefix": "GT", "next_value": 200000}

    next_value may only move forward; moving it back would re-issue numbers.
    """
    data = request.get_json(silent=True) or {}
    try:
        next_value = data.get("next_value")
        counter = sequence_service.update_counter(
            tenant_key,
            kind.upper(),
            prefix=data.get("prefix"),
            next_value=parse_int(next_value, "next_value") if next_value is not None else None,
        )
        return jsonify({"sequence": counter.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update sequence")
        return jsonify({"error": "Internal server error"}), 500
