from __future__ import annotations

from ..extensions import db
from courier.time_utils import to_utc_z, to_iso_date


def _money(value):
    return str(value) if value is not None else None


class CashTransaction(db.Model):
    """
    Branch cashbox movement (INCOME or EXPENSE).

    APPEND-ONLY: a wrong entry is corrected by a compensating row that points
    at it through reverses_transaction_id, never by update or delete.

    The source columns (parcel_id, manifest_id, payslip_id, expense_id,
    debt_id) record which business event produced the row; event_type names
    the ledger event (PARCEL_DELIVERED, COD_COLLECTED, ...).
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="amount_positive"),
        db.UniqueConstraint("reverses_transaction_id", name="uq_cash_transactions_reverses"),
        db.Index("ix_cash_transactions_branch_date", "branch_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_type = db.Column(db.String(16), nullable=False)  # INCOME, EXPENSE
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    transaction_date = db.Column(db.Date, nullable=False)
    event_type = db.Column(db.String(32), nullable=False, index=True)

    parcel_id = db.Column(db.Integer, db.ForeignKey("parcels.id"), nullable=True, index=True)
    manifest_id = db.Column(db.String(64), db.ForeignKey("manifests.id"), nullable=True, index=True)
    payslip_id = db.Column(db.String(50), db.ForeignKey("payslips.id"), nullable=True, index=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=True, index=True)
    debt_id = db.Column(db.Integer, db.ForeignKey("debts.id"), nullable=True, index=True)
    reverses_transaction_id = db.Column(db.Integer, db.ForeignKey("cash_transactions.id"), nullable=True)

    added_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    reverses = db.relationship("CashTransaction", remote_side=[id], backref=db.backref("reversal", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "amount": _money(self.amount),
            "description": self.description,
            "branch_id": self.branch_id,
            "transaction_date": to_iso_date(self.transaction_date),
            "event_type": self.event_type,
            "parcel_id": self.parcel_id,
            "manifest_id": self.manifest_id,
            "payslip_id": self.payslip_id,
            "expense_id": self.expense_id,
            "debt_id": self.debt_id,
            "reverses_transaction_id": self.reverses_transaction_id,
            "added_by_user_id": self.added_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(db.Model):
    """
    Branch expense.

    SALARY and PARCEL_COMMISSION expenses always have exactly one paired
    EXPENSE cash transaction (CashTransaction.expense_id) with the same
    amount and branch; both rows are written in one transaction.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    expense_type = db.Column(db.String(24), nullable=False, index=True)  # SALARY, PARCEL_COMMISSION, GENERAL
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    date_spent = db.Column(db.Date, nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    payslip_id = db.Column(db.String(50), db.ForeignKey("payslips.id"), nullable=True, index=True)
    manifest_id = db.Column(db.String(64), db.ForeignKey("manifests.id"), nullable=True, index=True)
    added_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_type": self.expense_type,
            "description": self.description,
            "amount": _money(self.amount),
            "date_spent": to_iso_date(self.date_spent),
            "branch_id": self.branch_id,
            "payslip_id": self.payslip_id,
            "manifest_id": self.manifest_id,
            "added_by_user_id": self.added_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Debt(db.Model):
    """
    Receivable/payable with a customer, driver or another branch.

    movement_type DEBTOR: the party owes the branch; CREDITOR: the branch owes
    the party. Status moves OUTSTANDING -> PAID or OUTSTANDING -> CANCELLED.
    """
    __tablename__ = "debts"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="amount_positive"),
        db.Index("ix_debts_branch_status", "initiating_branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    parcel_id = db.Column(db.Integer, db.ForeignKey("parcels.id"), nullable=True, index=True)
    debtor_type = db.Column(db.String(16), nullable=False)  # CUSTOMER, DRIVER, BRANCH
    debtor_id = db.Column(db.String(64), nullable=False)
    debtor_name = db.Column(db.String(120), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    movement_type = db.Column(db.String(16), nullable=False)  # DEBTOR, CREDITOR
    status = db.Column(db.String(16), nullable=False, default="OUTSTANDING", index=True)
    notes = db.Column(db.String(255), nullable=True)
    initiating_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    initiator_user_id = db.Column(db.Integer, nullable=True)
    settled_by_user_id = db.Column(db.Integer, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parcel_id": self.parcel_id,
            "debtor_type": self.debtor_type,
            "debtor_id": self.debtor_id,
            "debtor_name": self.debtor_name,
            "amount": _money(self.amount),
            "movement_type": self.movement_type,
            "status": self.status,
            "notes": self.notes,
            "initiating_branch_id": self.initiating_branch_id,
            "initiator_user_id": self.initiator_user_id,
            "settled_by_user_id": self.settled_by_user_id,
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
        }


class Payslip(db.Model):
    __tablename__ = "payslips"
    __table_args__ = (
        db.CheckConstraint("net_salary >= 0", name="net_salary_non_negative"),
    )

    id = db.Column(db.String(50), primary_key=True)
    employee_id = db.Column(db.String(50), db.ForeignKey("employees.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    pay_period_start = db.Column(db.Date, nullable=False)
    pay_period_end = db.Column(db.Date, nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    base_salary = db.Column(db.Numeric(14, 2), nullable=False)
    bonuses = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    deductions = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_salary = db.Column(db.Numeric(14, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    generated_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    employee = db.relationship("Employee", backref=db.backref("payslips", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "branch_id": self.branch_id,
            "pay_period_start": to_iso_date(self.pay_period_start),
            "pay_period_end": to_iso_date(self.pay_period_end),
            "payment_date": to_iso_date(self.payment_date),
            "base_salary": _money(self.base_salary),
            "bonuses": _money(self.bonuses),
            "deductions": _money(self.deductions),
            "net_salary": _money(self.net_salary),
            "notes": self.notes,
            "generated_by_user_id": self.generated_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
