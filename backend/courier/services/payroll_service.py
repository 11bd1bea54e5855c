# Overview: Service-layer operations for payroll; payslips and their salary ledger entries.

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Payslip
from ..errors import InvalidAmountError, NotFoundError
from ..validation import ConflictError, ValidationError, parse_amount, parse_date
from . import directory_service, ledger_service


logger = logging.getLogger(__name__)


def issue_payslip(
    *,
    payslip_id: str,
    employee_id: str,
    pay_period_start,
    pay_period_end,
    payment_date,
    base_salary,
    bonuses=Decimal("0"),
    deductions=Decimal("0"),
    notes: str | None = None,
    actor_user_id: int | None,
) -> tuple[Payslip, ledger_service.LedgerEntryIds]:
    """
    Issue a payslip and book the salary expense for the employee's branch.

    The payslip row, the SALARY expense and its paired EXPENSE cash
    transaction are committed together or not at all.

    Raises:
        InvalidAmountError: negative inputs or negative net salary
        ConflictError: payslip_id already used
        LedgerError: ledger write failed (payslip rolled back too)
    """
    payslip_id = (payslip_id or "").strip()
    if not payslip_id:
        raise ValidationError("payslip_id is required")
    if len(payslip_id) > 50:
        raise ValidationError("payslip_id exceeds max length 50")

    start = parse_date(pay_period_start, "pay_period_start")
    end = parse_date(pay_period_end, "pay_period_end")
    paid_on = parse_date(payment_date, "payment_date")
    if end < start:
        raise ValidationError("pay_period_end cannot be before pay_period_start")

    base = parse_amount(base_salary, "base_salary")
    bonus = parse_amount(bonuses if bonuses is not None else 0, "bonuses")
    deduction = parse_amount(deductions if deductions is not None else 0, "deductions")
    net = base + bonus - deduction
    if net < 0:
        raise InvalidAmountError(
            "Deductions cannot exceed base salary plus bonuses",
            net_salary=str(net),
        )

    employee = directory_service.require_employee(employee_id)
    if employee.branch_id is None:
        raise ValidationError(f"Employee {employee_id} has no branch")
    directory_service.require_active_branch(employee.branch_id)

    if db.session.get(Payslip, payslip_id):
        raise ConflictError(f"Payslip {payslip_id} already exists")

    payslip = Payslip(
        id=payslip_id,
        employee_id=employee.id,
        branch_id=employee.branch_id,
        pay_period_start=start,
        pay_period_end=end,
        payment_date=paid_on,
        base_salary=base,
        bonuses=bonus,
        deductions=deduction,
        net_salary=net,
        notes=notes,
        generated_by_user_id=actor_user_id,
    )
    db.session.add(payslip)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Payslip {payslip_id} already exists")

    ids = ledger_service.record(
        ledger_service.PayslipIssued(payslip, employee_name=employee.name),
        actor_user_id=actor_user_id,
    )
    logger.info("Payslip %s issued for employee %s: net %s", payslip_id, employee.id, net)
    return payslip, ids


def get_payslip(payslip_id: str) -> Payslip:
    payslip = db.session.get(Payslip, payslip_id)
    if not payslip:
        raise NotFoundError(f"Payslip {payslip_id} not found", payslip_id=payslip_id)
    return payslip


def list_payslips(*, employee_id: str | None = None, branch_id: int | None = None) -> list[Payslip]:
    query = db.session.query(Payslip)
    if employee_id:
        query = query.filter(Payslip.employee_id == employee_id)
    if branch_id is not None:
        query = query.filter(Payslip.branch_id == branch_id)
    return query.order_by(Payslip.payment_date.desc(), Payslip.id).all()
