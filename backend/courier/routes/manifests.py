# backend/courier/routes/manifests.py
"""
Manifest API Routes

- POST   /api/manifests                        - Open a manifest for a driver run
- GET    /api/manifests?branch_id=&status=     - List manifests
- GET    /api/manifests/<id>                   - Manifest with its parcels
- POST   /api/manifests/<id>/parcels           - Attach parcels
- DELETE /api/manifests/<id>/parcels/<pid>     - Detach a parcel
- POST   /api/manifests/<id>/status            - Advance status (PRINTED, IN_TRANSIT)
- POST   /api/manifests/<id>/cancel            - Cancel
- POST   /api/manifests/<id>/settle            - Settle and complete
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import manifest_service
from ..validation import DOMAIN_ERRORS, ValidationError, parse_int, require_fields
from ..decorators import require_actor


manifests_bp = Blueprint("manifests", __name__, url_prefix="/api/manifests")


def _parcel_ids(data: dict) -> list[int]:
    raw = data.get("parcel_ids") or []
    if not isinstance(raw, list):
        raise ValidationError("parcel_ids must be a list")
    return [parse_int(v, "parcel_ids") for v in raw]


@manifests_bp.post("")
@require_actor
def create_manifest_route():
    """
    Request body:
        {"branch_id": 1, "driver_id": "DRV-1", "city": "...", "parcel_ids": [1, 2]}
    """
    data = request.get_json(silent=True) or {}
    try:
        require_fields(data, "branch_id", "driver_id")
        manifest = manifest_service.create_manifest(
            g.tenant_key,
            branch_id=parse_int(data["branch_id"], "branch_id"),
            driver_id=str(data["driver_id"]).strip(),
            city=data.get("city"),
            parcel_ids=_parcel_ids(data),
            actor_user_id=g.actor_user_id,
        )
        return jsonify({"manifest": manifest.to_dict(include_parcels=True)}), 201
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create manifest")
        return jsonify({"error": "Internal server error"}), 500


@manifests_bp.get("")
@require_actor
def list_manifests_route():
    try:
        manifests = manifest_service.list_manifests(
            branch_id=request.args.get("branch_id", type=int),
            status=request.args.get("status"),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({"items": [m.to_dict() for m in manifests]}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status


@manifests_bp.get("/<string:manifest_id>")
@require_actor
def get_manifest_route(manifest_id: str):
    try:
        manifest = manifest_service.get_manifest(manifest_id)
        return jsonify({"manifest": manifest.to_dict(include_parcels=True)}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status


@manifests_bp.post("/<string:manifest_id>/parcels")
@require_actor
def add_parcels_route(manifest_id: str):
    data = request.get_json(silent=True) or {}
    try:
        parcel_ids = _parcel_ids(data)
        if not parcel_ids:
            return jsonify({"error": "parcel_ids is required"}), 400
        manifest = manifest_service.add_parcels(manifest_id, parcel_ids, actor_user_id=g.actor_user_id)
        return jsonify({"manifest": manifest.to_dict(include_parcels=True)}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add parcels to manifest")
        return jsonify({"error": "Internal server error"}), 500


@manifests_bp.delete("/<string:manifest_id>/parcels/<int:parcel_id>")
@require_actor
def remove_parcel_route(manifest_id: str, parcel_id: int):
    try:
        manifest = manifest_service.remove_parcel(manifest_id, parcel_id, actor_user_id=g.actor_user_id)
        return jsonify({"manifest": manifest.to_dict(include_parcels=True)}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove parcel from manifest")
        return jsonify({"error": "Internal server error"}), 500


@manifests_bp.post("/<string:manifest_id>/status")
@require_actor
def advance_status_route(manifest_id: str):
    """
    Request body:
        {"status": "PRINTED" | "IN_TRANSIT" | "COMPLETED" | "CANCELLED"}
    """
    data = request.get_json(silent=True) or {}
    target_status = (data.get("status") or "").strip().upper()
    if not target_status:
        return jsonify({"error": "status is required"}), 400

    try:
        manifest = manifest_service.advance_status(manifest_id, target_status, actor_user_id=g.actor_user_id)
        return jsonify({"manifest": manifest.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to advance manifest status")
        return jsonify({"error": "Internal server error"}), 500


@manifests_bp.post("/<string:manifest_id>/cancel")
@require_actor
def cancel_manifest_route(manifest_id: str):
    try:
        manifest = manifest_service.cancel_manifest(manifest_id, actor_user_id=g.actor_user_id)
        return jsonify({"manifest": manifest.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel manifest")
        return jsonify({"error": "Internal server error"}), 500


@manifests_bp.post("/<string:manifest_id>/settle")
@require_actor
def settle_manifest_route(manifest_id: str):
    """
    Response:
        {"settlement": {"total_shipping_cost": "...", "total_received": "...", ...}}

    Error responses:
        404: Manifest not found
        409: Parcels still PROCESSING, or manifest not IN_TRANSIT
    """
    try:
        summary = manifest_service.settle(manifest_id, actor_user_id=g.actor_user_id)
        return jsonify({"settlement": summary.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to settle manifest")
        return jsonify({"error": "Internal server error"}), 500
