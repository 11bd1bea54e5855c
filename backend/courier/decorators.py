# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app


def require_actor(f):
    """
    Establish the acting user and tenant for the request.

    Sets the following Flask g attributes:
    - g.actor_user_id: integer id from the X-Actor-Id header - REQUIRED
    - g.tenant_key: tenant from the X-Tenant-Key header, or the app's
      DEFAULT_TENANT_KEY when the header is absent

    Session mechanics live in front of this service; the gateway is trusted
    to set these headers. Returns 401 when the actor is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_actor = (request.headers.get("X-Actor-Id") or "").strip()
        if not raw_actor:
            return jsonify({"error": "Actor required"}), 401
        if not raw_actor.isdigit():
            return jsonify({"error": "Invalid actor id"}), 401

        tenant_key = (request.headers.get("X-Tenant-Key") or "").strip() or current_app.config.get("DEFAULT_TENANT_KEY")

        g.actor_user_id = int(raw_actor)
        g.tenant_key = tenant_key

        return f(*args, **kwargs)

    return decorated_function
