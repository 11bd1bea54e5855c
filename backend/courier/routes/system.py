# backend/courier/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether the configured default tenant has
its sequence counters provisioned (parcel intake fails without them).
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Branch, SequenceCounter
from ..services.sequence_service import VALID_KINDS
from courier.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"branches": branch_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_sequence_health() -> dict:
    """Degraded (not unhealthy) when the default tenant is missing a counter."""
    start_time = time.time()
    tenant_key = current_app.config.get("DEFAULT_TENANT_KEY")
    try:
        kinds = {
            kind for (kind,) in db.session.query(SequenceCounter.kind).filter_by(tenant_key=tenant_key).all()
        }
        elapsed_ms = (time.time() - start_time) * 1000
        missing = sorted(VALID_KINDS - kinds)
        if missing:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"Tenant '{tenant_key}' missing sequences: {', '.join(missing)}",
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tenant_key": tenant_key, "sequences": sorted(kinds)},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Sequence health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Sequence check error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    sequence_health = check_sequence_health()

    all_checks = [database_health, sequence_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sequences": sequence_health,
        },
    }
    return response, http_status
