# Overview: Flask API routes for payslips; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payroll_service
from ..validation import DOMAIN_ERRORS, require_fields
from ..decorators import require_actor


payroll_bp = Blueprint("payroll", __name__, url_prefix="/api/payslips")


@payroll_bp.post("")
@require_actor
def issue_payslip_route():
    """
    Issue a payslip.

    Request body:
        {
            "payslip_id": "PS-2026-01-E1",
            "employee_id": "E1",
            "pay_period_start": "2026-01-01",
            "pay_period_end": "2026-01-31",
            "payment_date": "2026-02-01",
            "base_salary": "500000",
            "bonuses": "0",
            "deductions": "0",
            "notes": "..."
        }

    The payslip, its SALARY expense and the paired cash transaction are
    committed together or not at all.
    """
    data = request.get_json(silent=True) or {}
    try:
        require_fields(data, "payslip_id", "employee_id", "pay_period_start", "pay_period_end", "payment_date", "base_salary")
        payslip, ids = payroll_service.issue_payslip(
            payslip_id=str(data["payslip_id"]),
            employee_id=str(data["employee_id"]),
            pay_period_start=data["pay_period_start"],
            pay_period_end=data["pay_period_end"],
            payment_date=data["payment_date"],
            base_salary=data["base_salary"],
            bonuses=data.get("bonuses", 0),
            deductions=data.get("deductions", 0),
            notes=data.get("notes"),
            actor_user_id=g.actor_user_id,
        )
        return jsonify({"payslip": payslip.to_dict(), "entries": ids.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to issue payslip")
        return jsonify({"error": "Internal server error"}), 500


@payroll_bp.get("")
@require_actor
def list_payslips_route():
    payslips = payroll_service.list_payslips(
        employee_id=request.args.get("employee_id"),
        branch_id=request.args.get("branch_id", type=int),
    )
    return jsonify({"items": [p.to_dict() for p in payslips]}), 200


@payroll_bp.get("/<string:payslip_id>")
@require_actor
def get_payslip_route(payslip_id: str):
    try:
        return jsonify({"payslip": payroll_service.get_payslip(payslip_id).to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return jsonify(e.to_dict()), e.http_status
