# Overview: Pytest coverage for ledger atomicity, reversals, expenses and debts.

"""
Ledger Tests

Covers:
- A failed cash write rolls back the whole event (payslip, expense, cash row)
- Reversals are compensating rows; a row is reversed at most once
- General expenses write the paired cash row
- Debt settlement books the cash movement and marks the parcel paid
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from courier.errors import IllegalTransitionError, InvalidAmountError, LedgerError, NotFoundError
from courier.models import CashTransaction, Debt, Expense, Payslip
from courier.services import ledger_service, lifecycle_service, parcel_service, payroll_service
from courier.validation import ConflictError


def _issue(employee, **overrides):
    kwargs = dict(
        payslip_id="PS-2026-01-E1",
        employee_id=employee.id,
        pay_period_start="2026-01-01",
        pay_period_end="2026-01-31",
        payment_date="2026-02-01",
        base_salary="500000",
        bonuses="50000",
        deductions="25000",
        actor_user_id=1,
    )
    kwargs.update(overrides)
    return payroll_service.issue_payslip(**kwargs)


class TestPayslipLedger:
    def test_payslip_writes_salary_expense_and_cash_row(self, db_session, employee):
        payslip, ids = _issue(employee)

        assert payslip.net_salary == Decimal("525000")
        assert len(ids.expense_ids) == 1
        assert len(ids.cash_transaction_ids) == 1

        expense = db_session.get(Expense, ids.expense_ids[0])
        tx = db_session.get(CashTransaction, ids.cash_transaction_ids[0])
        assert expense.expense_type == "SALARY"
        assert expense.payslip_id == payslip.id
        assert tx.transaction_type == "EXPENSE"
        assert tx.amount == expense.amount
        assert tx.branch_id == expense.branch_id == employee.branch_id
        assert tx.transaction_date == date(2026, 2, 1)

    def test_cash_write_failure_rolls_back_everything(self, db_session, employee, monkeypatch):
        def _fail(**kwargs):
            raise OperationalError("INSERT INTO cash_transactions", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ledger_service, "_write_cash_transaction", _fail)

        with pytest.raises(LedgerError) as excinfo:
            _issue(employee)
        assert isinstance(excinfo.value.__cause__, OperationalError)

        assert db_session.query(Payslip).count() == 0
        assert db_session.query(Expense).count() == 0
        assert db_session.query(CashTransaction).count() == 0

    def test_negative_net_salary_rejected(self, db_session, employee):
        with pytest.raises(InvalidAmountError):
            _issue(employee, base_salary="100", bonuses="0", deductions="500")
        assert db_session.query(Payslip).count() == 0

    def test_duplicate_payslip_id(self, db_session, employee):
        _issue(employee)
        with pytest.raises(ConflictError):
            _issue(employee)
        assert db_session.query(Expense).count() == 1


class TestReversal:
    def test_reverse_once(self, db_session, origin):
        expense, ids = ledger_service.record_expense(
            branch_id=origin.id,
            amount=Decimal("12000"),
            description="Generator fuel",
            date_spent=date(2026, 3, 5),
            actor_user_id=1,
        )
        original_id = ids.cash_transaction_ids[0]

        reversal = ledger_service.reverse_cash_transaction(original_id, actor_user_id=3)
        assert reversal.transaction_type == "INCOME"
        assert reversal.amount == Decimal("12000")
        assert reversal.reverses_transaction_id == original_id
        assert reversal.expense_id == expense.id

        balance = ledger_service.cashbox_balance(origin.id)
        assert balance["income"] == Decimal("12000")
        assert balance["expense"] == Decimal("12000")
        assert balance["balance"] == Decimal("0")

    def test_double_reversal_conflicts(self, db_session, origin):
        _, ids = ledger_service.record_expense(
            branch_id=origin.id,
            amount=Decimal("5000"),
            description="Stationery",
            date_spent=None,
            actor_user_id=1,
        )
        original_id = ids.cash_transaction_ids[0]
        reversal = ledger_service.reverse_cash_transaction(original_id, actor_user_id=1)

        with pytest.raises(ConflictError):
            ledger_service.reverse_cash_transaction(original_id, actor_user_id=1)
        with pytest.raises(ConflictError):
            ledger_service.reverse_cash_transaction(reversal.id, actor_user_id=1)
        assert db_session.query(CashTransaction).count() == 2

    def test_unknown_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.reverse_cash_transaction(404, actor_user_id=1)


class TestExpenses:
    def test_zero_amount_rejected(self, db_session, origin):
        with pytest.raises(InvalidAmountError):
            ledger_service.record_expense(
                branch_id=origin.id,
                amount=Decimal("0"),
                description="Nothing",
                date_spent=None,
                actor_user_id=1,
            )
        assert db_session.query(Expense).count() == 0

    def test_statement_filters(self, db_session, origin, destination):
        for branch, amount, day in ((origin, "1000", 1), (origin, "2000", 10), (destination, "3000", 10)):
            ledger_service.record_expense(
                branch_id=branch.id,
                amount=Decimal(amount),
                description=f"Expense {amount}",
                date_spent=date(2026, 4, day),
                actor_user_id=1,
            )

        rows = ledger_service.list_cash_transactions(branch_id=origin.id, start_date=date(2026, 4, 5))
        assert [r.amount for r in rows] == [Decimal("2000")]
        assert len(ledger_service.list_cash_transactions(end_date=date(2026, 4, 10))) == 3
        assert ledger_service.cashbox_balance()["balance"] == Decimal("-6000")


class TestDebts:
    def _deliver_postpaid(self, make_parcel, driver):
        parcel = make_parcel(payment_type="POSTPAID", shipping_cost="15000")
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)
        return parcel

    def test_settle_books_income_and_marks_parcel_paid(self, db_session, make_parcel, driver, origin):
        parcel = self._deliver_postpaid(make_parcel, driver)
        debt = ledger_service.list_debts(parcel_id=parcel.id)[0]

        settled, ids = ledger_service.settle_debt(debt.id, actor_user_id=4)
        assert settled.status == "PAID"
        assert settled.settled_by_user_id == 4
        assert settled.paid_at is not None

        tx = db_session.get(CashTransaction, ids.cash_transaction_ids[0])
        assert tx.transaction_type == "INCOME"
        assert tx.amount == Decimal("15000")
        assert tx.branch_id == origin.id
        assert tx.debt_id == debt.id
        assert parcel_service.get_parcel(parcel.id).is_paid is True

    def test_settle_twice_rejected(self, db_session, make_parcel, driver):
        parcel = self._deliver_postpaid(make_parcel, driver)
        debt = ledger_service.list_debts(parcel_id=parcel.id)[0]
        ledger_service.settle_debt(debt.id, actor_user_id=1)

        with pytest.raises(IllegalTransitionError):
            ledger_service.settle_debt(debt.id, actor_user_id=1)
        assert db_session.query(CashTransaction).filter_by(debt_id=debt.id).count() == 1

    def test_creditor_debt_books_expense(self, db_session, origin):
        debt = Debt(
            debtor_type="DRIVER",
            debtor_id="DRV-9",
            debtor_name="Karim",
            amount=Decimal("4000"),
            movement_type="CREDITOR",
            initiating_branch_id=origin.id,
        )
        db_session.add(debt)
        db_session.commit()

        _, ids = ledger_service.settle_debt(debt.id, actor_user_id=1)
        tx = db_session.get(CashTransaction, ids.cash_transaction_ids[0])
        assert tx.transaction_type == "EXPENSE"
        assert tx.parcel_id is None

    def test_outstanding_filter(self, db_session, make_parcel, driver):
        self._deliver_postpaid(make_parcel, driver)
        assert len(ledger_service.list_debts(status="OUTSTANDING")) == 1
        assert ledger_service.list_debts(status="PAID") == []
