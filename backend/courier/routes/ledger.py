# Overview: Flask API routes for the cashbox, expenses and debts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import ledger_service
from ..validation import DOMAIN_ERRORS, ValidationError, parse_amount, parse_date, parse_int, require_fields
from ..time_utils import parse_iso_date
from ..decorators import require_actor

"""
Date semantics:
- start_date / end_date are ISO dates (YYYY-MM-DD), inclusive on both ends.
- Amounts are returned as decimal strings.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api")


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


@ledger_bp.get("/cashbox")
@require_actor
def list_cash_transactions_route():
    try:
        rows = ledger_service.list_cash_transactions(
            branch_id=request.args.get("branch_id", type=int),
            parcel_id=request.args.get("parcel_id", type=int),
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            limit=request.args.get("limit", default=200, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
        return jsonify({"items": [r.to_dict() for r in rows]}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status


@ledger_bp.get("/cashbox/balance")
@require_actor
def cashbox_balance_route():
    balance = ledger_service.cashbox_balance(branch_id=request.args.get("branch_id", type=int))
    return jsonify({
        "branch_id": balance["branch_id"],
        "income": str(balance["income"]),
        "expense": str(balance["expense"]),
        "balance": str(balance["balance"]),
    }), 200


@ledger_bp.post("/cashbox/<int:transaction_id>/reverse")
@require_actor
def reverse_cash_transaction_route(transaction_id: int):
    try:
        reversal = ledger_service.reverse_cash_transaction(transaction_id, actor_user_id=g.actor_user_id)
        return jsonify({"transaction": reversal.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reverse cash transaction")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/expenses")
@require_actor
def create_expense_route():
    """
    Request body:
        {"branch_id": 1, "amount": "5000", "description": "Fuel", "date_spent": "2026-01-31"}

    Writes the GENERAL expense and its paired EXPENSE cash transaction together.
    """
    data = request.get_json(silent=True) or {}
    try:
        require_fields(data, "branch_id", "amount", "description")
        description = str(data["description"]).strip()
        if not description:
            raise ValidationError("description cannot be blank")
        expense, ids = ledger_service.record_expense(
            branch_id=parse_int(data["branch_id"], "branch_id"),
            amount=parse_amount(data["amount"], "amount", allow_zero=False),
            description=description,
            date_spent=parse_date(data["date_spent"], "date_spent") if data.get("date_spent") else None,
            actor_user_id=g.actor_user_id,
        )
        return jsonify({"expense": expense.to_dict(), "entries": ids.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/debts")
@require_actor
def list_debts_route():
    debts = ledger_service.list_debts(
        branch_id=request.args.get("branch_id", type=int),
        status=request.args.get("status"),
        parcel_id=request.args.get("parcel_id", type=int),
    )
    return jsonify({"items": [d.to_dict() for d in debts]}), 200


@ledger_bp.post("/debts/<int:debt_id>/settle")
@require_actor
def settle_debt_route(debt_id: int):
    try:
        debt, ids = ledger_service.settle_debt(debt_id, actor_user_id=g.actor_user_id)
        return jsonify({"debt": debt.to_dict(), "entries": ids.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to settle debt")
        return jsonify({"error": "Internal server error"}), 500
