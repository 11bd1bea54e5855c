# backend/courier/routes/parcels.py
"""
Parcel API Routes

- POST  /api/parcels                          - Accept a parcel (issues tracking number)
- GET   /api/parcels?q=&status=&branch_id=    - Search parcels
- GET   /api/parcels/status-counts            - Parcel count per status
- GET   /api/parcels/<tracking_number>        - Look up by tracking number
- PATCH /api/parcels/<id>                     - Edit while PROCESSING
- POST  /api/parcels/<id>/transition          - Lifecycle transition
- POST  /api/parcels/<id>/collect-payment     - Collect COD payment
- GET   /api/parcels/<id>/logs                - Status history

The acting user is taken from the request context (g.actor_user_id), NOT
from the request body.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import parcel_service, lifecycle_service
from ..validation import DOMAIN_ERRORS
from ..decorators import require_actor


parcels_bp = Blueprint("parcels", __name__, url_prefix="/api/parcels")


@parcels_bp.post("")
@require_actor
def create_parcel_route():
    """
    Request body:
        {
            "sender_name": "...", "receiver_name": "...", "receiver_city": "...",
            "origin_branch_id": 1, "destination_branch_id": 2,
            "shipping_cost": "10000", "shipping_tax": "0",
            "payment_type": "PREPAID" | "COD" | "POSTPAID",
            ...
        }

    Error responses:
        400: Validation failure or invalid amount
        404: Branch or driver not found
        409: Sequence contention persisted after retries
        500: Tenant sequence not provisioned
    """
    try:
        parcel = parcel_service.create_parcel(
            g.tenant_key,
            request.get_json(silent=True),
            actor_user_id=g.actor_user_id,
        )
        return jsonify({"parcel": parcel.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create parcel")
        return jsonify({"error": "Internal server error"}), 500


@parcels_bp.get("")
@require_actor
def search_parcels_route():
    try:
        parcels = parcel_service.search_parcels(
            q=request.args.get("q"),
            status=request.args.get("status"),
            branch_id=request.args.get("branch_id", type=int),
            tenant_key=g.tenant_key,
            limit=request.args.get("limit", default=50, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
        return jsonify({"items": [p.to_dict() for p in parcels], "count": len(parcels)}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to search parcels")
        return jsonify({"error": "Internal server error"}), 500


@parcels_bp.get("/status-counts")
@require_actor
def status_counts_route():
    counts = parcel_service.status_counts(
        branch_id=request.args.get("branch_id", type=int),
        tenant_key=g.tenant_key,
    )
    return jsonify({"counts": counts}), 200


@parcels_bp.get("/<string:tracking_number>")
@require_actor
def get_parcel_route(tracking_number: str):
    try:
        parcel = parcel_service.get_parcel_by_tracking_number(tracking_number)
        return jsonify({"parcel": parcel.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status


@parcels_bp.patch("/<int:parcel_id>")
@require_actor
def update_parcel_route(parcel_id: int):
    try:
        parcel = parcel_service.update_parcel_details(
            parcel_id,
            request.get_json(silent=True),
            actor_user_id=g.actor_user_id,
        )
        return jsonify({"parcel": parcel.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update parcel")
        return jsonify({"error": "Internal server error"}), 500


@parcels_bp.post("/<int:parcel_id>/transition")
@require_actor
def transition_parcel_route(parcel_id: int):
    """
    Request body:
        {"status": "IN_TRANSIT", "note": "...", "driver_id": "DRV-1"}

    Error responses:
        400: Unknown status, inactive branch/driver
        404: Parcel not found
        409: Illegal or duplicate transition
        500: Ledger write failed (nothing was changed)
    """
    data = request.get_json(silent=True) or {}
    target_status = (data.get("status") or "").strip().upper()
    if not target_status:
        return jsonify({"error": "status is required"}), 400

    try:
        parcel = lifecycle_service.transition(
            parcel_id,
            target_status,
            actor_user_id=g.actor_user_id,
            note=data.get("note"),
            driver_id=data.get("driver_id"),
        )
        return jsonify({
            "parcel": parcel.to_dict(),
            "message": f"Parcel {parcel.tracking_number} is now {parcel.status}",
        }), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to transition parcel")
        return jsonify({"error": "Internal server error"}), 500


@parcels_bp.post("/<int:parcel_id>/collect-payment")
@require_actor
def collect_payment_route(parcel_id: int):
    try:
        parcel = parcel_service.collect_cod_payment(parcel_id, actor_user_id=g.actor_user_id)
        return jsonify({"parcel": parcel.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to collect payment")
        return jsonify({"error": "Internal server error"}), 500


@parcels_bp.get("/<int:parcel_id>/logs")
@require_actor
def parcel_logs_route(parcel_id: int):
    try:
        logs = lifecycle_service.get_parcel_logs(parcel_id)
        return jsonify({"items": [log.to_dict() for log in logs]}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
