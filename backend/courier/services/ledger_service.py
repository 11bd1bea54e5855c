# Overview: Service-layer operations for the branch ledger (cashbox, expenses, debts).

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import CashTransaction, Debt, Expense, Manifest, Parcel, Payslip
from ..errors import CourierError, IllegalTransitionError, InvalidAmountError, LedgerError, NotFoundError
from ..validation import ConflictError, ValidationError
from ..time_utils import utcnow
from .concurrency import lock_for_update
from . import directory_service
"""
Courier Ledger Invariants (authoritative)

- Append-only: cash transactions are never updated or deleted. Corrections
  are compensating rows linked through reverses_transaction_id.
- Every SALARY / PARCEL_COMMISSION / GENERAL expense has exactly one paired
  EXPENSE cash transaction with the same amount and branch.
- All rows of one event are written in one transaction. On any failure the
  session is rolled back and LedgerError is raised with the cause chained;
  there is no partial-success path.
- record(..., commit=False) only flushes, so the caller's unit of work
  (e.g., a parcel transition) stays the single atomic boundary.
"""


logger = logging.getLogger(__name__)

INCOME = "INCOME"
EXPENSE = "EXPENSE"


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class ParcelDelivered:
    parcel: Parcel


@dataclass(frozen=True)
class CodCollected:
    parcel: Parcel


@dataclass(frozen=True)
class ParcelCancelled:
    parcel: Parcel


@dataclass(frozen=True)
class PayslipIssued:
    payslip: Payslip
    employee_name: Optional[str] = None


@dataclass(frozen=True)
class ManifestSettled:
    manifest: Manifest
    driver_commission_total: Decimal


@dataclass(frozen=True)
class ExpenseRecorded:
    branch_id: int
    amount: Decimal
    description: str
    date_spent: Optional[date] = None


@dataclass(frozen=True)
class DebtSettled:
    debt: Debt


@dataclass(frozen=True)
class LedgerEntryIds:
    cash_transaction_ids: tuple = ()
    expense_ids: tuple = ()
    debt_ids: tuple = ()

    def to_dict(self) -> dict:
        return {
            "cash_transaction_ids": list(self.cash_transaction_ids),
            "expense_ids": list(self.expense_ids),
            "debt_ids": list(self.debt_ids),
        }


@dataclass
class _Entries:
    cash_transaction_ids: list = field(default_factory=list)
    expense_ids: list = field(default_factory=list)
    debt_ids: list = field(default_factory=list)

    def freeze(self) -> LedgerEntryIds:
        return LedgerEntryIds(
            cash_transaction_ids=tuple(self.cash_transaction_ids),
            expense_ids=tuple(self.expense_ids),
            debt_ids=tuple(self.debt_ids),
        )


# =============================================================================
# Row writers (add + flush, never commit)
# =============================================================================

def _write_cash_transaction(
    *,
    transaction_type: str,
    amount: Decimal,
    branch_id: int,
    description: str,
    event_type: str,
    actor_user_id: int | None,
    transaction_date: date | None = None,
    **links,
) -> CashTransaction:
    tx = CashTransaction(
        transaction_type=transaction_type,
        amount=amount,
        branch_id=branch_id,
        description=description[:255],
        event_type=event_type,
        transaction_date=transaction_date or utcnow().date(),
        added_by_user_id=actor_user_id,
        **links,
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def _write_expense(
    *,
    expense_type: str,
    amount: Decimal,
    branch_id: int,
    description: str,
    actor_user_id: int | None,
    date_spent: date | None = None,
    payslip_id: str | None = None,
    manifest_id: str | None = None,
) -> Expense:
    expense = Expense(
        expense_type=expense_type,
        amount=amount,
        branch_id=branch_id,
        description=description[:255],
        date_spent=date_spent or utcnow().date(),
        payslip_id=payslip_id,
        manifest_id=manifest_id,
        added_by_user_id=actor_user_id,
    )
    db.session.add(expense)
    db.session.flush()
    return expense


def _write_paired_expense(entries: _Entries, *, event_type: str, actor_user_id, **expense_fields) -> Expense:
    """Expense row plus its EXPENSE cash transaction (same amount and branch)."""
    expense = _write_expense(actor_user_id=actor_user_id, **expense_fields)
    entries.expense_ids.append(expense.id)

    links = {"expense_id": expense.id}
    if expense.payslip_id:
        links["payslip_id"] = expense.payslip_id
    if expense.manifest_id:
        links["manifest_id"] = expense.manifest_id

    tx = _write_cash_transaction(
        transaction_type=EXPENSE,
        amount=expense.amount,
        branch_id=expense.branch_id,
        description=expense.description,
        event_type=event_type,
        actor_user_id=actor_user_id,
        transaction_date=expense.date_spent,
        **links,
    )
    entries.cash_transaction_ids.append(tx.id)
    return expense


def _reverse(original: CashTransaction, *, event_type: str, actor_user_id, description: str | None = None) -> CashTransaction:
    return _write_cash_transaction(
        transaction_type=INCOME if original.transaction_type == EXPENSE else EXPENSE,
        amount=original.amount,
        branch_id=original.branch_id,
        description=description or f"Reversal of transaction #{original.id}: {original.description}",
        event_type=event_type,
        actor_user_id=actor_user_id,
        parcel_id=original.parcel_id,
        manifest_id=original.manifest_id,
        payslip_id=original.payslip_id,
        expense_id=original.expense_id,
        debt_id=original.debt_id,
        reverses_transaction_id=original.id,
    )


def _unreversed_transactions_query():
    reversed_ids = select(CashTransaction.reverses_transaction_id).where(
        CashTransaction.reverses_transaction_id.isnot(None)
    )
    return db.session.query(CashTransaction).filter(
        CashTransaction.reverses_transaction_id.is_(None),
        CashTransaction.id.notin_(reversed_ids),
    )


# =============================================================================
# Event handlers
# =============================================================================

def _on_parcel_delivered(event: ParcelDelivered, entries: _Entries, actor_user_id) -> None:
    parcel = event.parcel
    if parcel.payment_type == "PREPAID":
        _ensure_not_recorded(parcel, "PARCEL_DELIVERED")
        if parcel.shipping_cost > 0:
            tx = _write_cash_transaction(
                transaction_type=INCOME,
                amount=parcel.shipping_cost,
                branch_id=parcel.origin_branch_id,
                description=f"Parcel revenue {parcel.tracking_number}",
                event_type="PARCEL_DELIVERED",
                actor_user_id=actor_user_id,
                parcel_id=parcel.id,
            )
            entries.cash_transaction_ids.append(tx.id)
    elif parcel.payment_type == "POSTPAID":
        if parcel.shipping_cost > 0:
            debt = Debt(
                parcel_id=parcel.id,
                debtor_type="CUSTOMER",
                debtor_id=(parcel.sender_phone or parcel.sender_name)[:64],
                debtor_name=parcel.sender_name,
                amount=parcel.shipping_cost,
                movement_type="DEBTOR",
                status="OUTSTANDING",
                notes=f"Postpaid parcel {parcel.tracking_number}",
                initiating_branch_id=parcel.origin_branch_id,
                initiator_user_id=actor_user_id,
            )
            db.session.add(debt)
            db.session.flush()
            entries.debt_ids.append(debt.id)
    # COD: income is booked on collection (CodCollected)


def _on_cod_collected(event: CodCollected, entries: _Entries, actor_user_id) -> None:
    parcel = event.parcel
    if parcel.payment_type != "COD":
        raise ValidationError(f"Parcel {parcel.tracking_number} is not cash on delivery")
    _ensure_not_recorded(parcel, "COD_COLLECTED")
    if parcel.shipping_cost > 0:
        tx = _write_cash_transaction(
            transaction_type=INCOME,
            amount=parcel.shipping_cost,
            branch_id=parcel.destination_branch_id,
            description=f"COD collected for parcel {parcel.tracking_number}",
            event_type="COD_COLLECTED",
            actor_user_id=actor_user_id,
            parcel_id=parcel.id,
        )
        entries.cash_transaction_ids.append(tx.id)


def _on_parcel_cancelled(event: ParcelCancelled, entries: _Entries, actor_user_id) -> None:
    parcel = event.parcel
    originals = (
        _unreversed_transactions_query()
        .filter(CashTransaction.parcel_id == parcel.id)
        .order_by(CashTransaction.id)
        .all()
    )
    for original in originals:
        tx = _reverse(
            original,
            event_type="PARCEL_CANCELLED",
            actor_user_id=actor_user_id,
            description=f"Parcel {parcel.tracking_number} cancelled: reversal of transaction #{original.id}",
        )
        entries.cash_transaction_ids.append(tx.id)
        if original.event_type == "COD_COLLECTED":
            # Refunded COD
            parcel.is_paid = False

    now = utcnow()
    debts = db.session.query(Debt).filter_by(parcel_id=parcel.id, status="OUTSTANDING").all()
    for debt in debts:
        debt.status = "CANCELLED"
        debt.cancelled_at = now
        debt.settled_by_user_id = actor_user_id
        entries.debt_ids.append(debt.id)
    db.session.flush()


def _on_payslip_issued(event: PayslipIssued, entries: _Entries, actor_user_id) -> None:
    payslip = event.payslip
    if payslip.net_salary <= 0:
        return
    name = event.employee_name or payslip.employee_id
    _write_paired_expense(
        entries,
        event_type="PAYSLIP_ISSUED",
        actor_user_id=actor_user_id,
        expense_type="SALARY",
        amount=payslip.net_salary,
        branch_id=payslip.branch_id,
        description=(
            f"Salary {payslip.id} for {name} "
            f"({payslip.pay_period_start.isoformat()} to {payslip.pay_period_end.isoformat()})"
        ),
        date_spent=payslip.payment_date,
        payslip_id=payslip.id,
    )


def _on_manifest_settled(event: ManifestSettled, entries: _Entries, actor_user_id) -> None:
    if event.driver_commission_total <= 0:
        return
    manifest = event.manifest
    _write_paired_expense(
        entries,
        event_type="MANIFEST_SETTLED",
        actor_user_id=actor_user_id,
        expense_type="PARCEL_COMMISSION",
        amount=event.driver_commission_total,
        branch_id=manifest.branch_id,
        description=f"Driver commission for manifest {manifest.id} ({manifest.driver_id})",
        manifest_id=manifest.id,
    )


def _on_expense_recorded(event: ExpenseRecorded, entries: _Entries, actor_user_id) -> None:
    if event.amount <= 0:
        raise InvalidAmountError("amount must be > 0", field="amount")
    _write_paired_expense(
        entries,
        event_type="EXPENSE_RECORDED",
        actor_user_id=actor_user_id,
        expense_type="GENERAL",
        amount=event.amount,
        branch_id=event.branch_id,
        description=event.description,
        date_spent=event.date_spent,
    )


def _on_debt_settled(event: DebtSettled, entries: _Entries, actor_user_id) -> None:
    debt = event.debt
    if debt.status != "OUTSTANDING":
        raise IllegalTransitionError(
            f"Debt {debt.id} is {debt.status}, only OUTSTANDING debts can be settled",
            current=debt.status,
            requested="PAID",
        )

    debt.status = "PAID"
    debt.paid_at = utcnow()
    debt.settled_by_user_id = actor_user_id
    entries.debt_ids.append(debt.id)

    # DEBTOR: the party pays the branch; CREDITOR: the branch pays the party
    tx = _write_cash_transaction(
        transaction_type=INCOME if debt.movement_type == "DEBTOR" else EXPENSE,
        amount=debt.amount,
        branch_id=debt.initiating_branch_id,
        description=f"Settlement of debt #{debt.id} ({debt.debtor_name})",
        event_type="DEBT_SETTLED",
        actor_user_id=actor_user_id,
        parcel_id=debt.parcel_id,
        debt_id=debt.id,
    )
    entries.cash_transaction_ids.append(tx.id)

    if debt.parcel_id is not None:
        parcel = db.session.get(Parcel, debt.parcel_id)
        if parcel is not None and not parcel.is_paid:
            parcel.is_paid = True
    db.session.flush()


def _ensure_not_recorded(parcel: Parcel, event_type: str) -> None:
    existing = (
        _unreversed_transactions_query()
        .filter(CashTransaction.parcel_id == parcel.id, CashTransaction.event_type == event_type)
        .first()
    )
    if existing:
        raise ConflictError(f"{event_type} already recorded for parcel {parcel.tracking_number}")


_HANDLERS = {
    ParcelDelivered: _on_parcel_delivered,
    CodCollected: _on_cod_collected,
    ParcelCancelled: _on_parcel_cancelled,
    PayslipIssued: _on_payslip_issued,
    ManifestSettled: _on_manifest_settled,
    ExpenseRecorded: _on_expense_recorded,
    DebtSettled: _on_debt_settled,
}


# =============================================================================
# Public API
# =============================================================================

def record(event, *, actor_user_id: int | None, commit: bool = True) -> LedgerEntryIds:
    """
    Write every ledger row for one business event as a single unit.

    Args:
        event: one of the event dataclasses above
        actor_user_id: user recorded on every row written
        commit: commit on success (False = flush only; caller commits)

    Returns:
        LedgerEntryIds with the ids of the rows written or changed

    Raises:
        LedgerError: a write failed; the session has been rolled back and the
            database error is chained as __cause__
        CourierError / ValidationError / ConflictError: the event was rejected
            before anything was written (session also rolled back)
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unsupported ledger event: {type(event).__name__}")

    entries = _Entries()
    event_name = type(event).__name__
    try:
        handler(event, entries, actor_user_id)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except (CourierError, ValidationError, ConflictError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Ledger write failed for %s: %s", event_name, exc)
        raise LedgerError(f"Failed to record {event_name}; no ledger entries were written", event=event_name) from exc

    ids = entries.freeze()
    logger.info(
        "Recorded %s: cash=%s expenses=%s debts=%s",
        event_name, list(ids.cash_transaction_ids), list(ids.expense_ids), list(ids.debt_ids),
    )
    return ids


def get_cash_transaction(transaction_id: int) -> CashTransaction:
    tx = db.session.get(CashTransaction, transaction_id)
    if not tx:
        raise NotFoundError(f"Cash transaction {transaction_id} not found")
    return tx


def list_cash_transactions(
    *,
    branch_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    parcel_id: int | None = None,
    limit: int = 200,
    offset: int = 0,
) -> list[CashTransaction]:
    """Cashbox statement rows, newest first. Date filters are inclusive."""
    query = db.session.query(CashTransaction)
    if branch_id is not None:
        query = query.filter(CashTransaction.branch_id == branch_id)
    if parcel_id is not None:
        query = query.filter(CashTransaction.parcel_id == parcel_id)
    if start_date is not None:
        query = query.filter(CashTransaction.transaction_date >= start_date)
    if end_date is not None:
        query = query.filter(CashTransaction.transaction_date <= end_date)
    return (
        query.order_by(CashTransaction.transaction_date.desc(), CashTransaction.id.desc())
        .offset(offset)
        .limit(min(max(limit, 1), 1000))
        .all()
    )


def cashbox_balance(branch_id: int | None = None) -> dict:
    """
    Income, expense and balance for one branch, or for all branches.

    Reversals are ordinary rows of the opposite type, so plain sums net them out.
    """
    def _sum(transaction_type: str) -> Decimal:
        query = db.session.query(func.coalesce(func.sum(CashTransaction.amount), 0)).filter(
            CashTransaction.transaction_type == transaction_type
        )
        if branch_id is not None:
            query = query.filter(CashTransaction.branch_id == branch_id)
        return Decimal(str(query.scalar() or 0))

    income = _sum(INCOME)
    expense = _sum(EXPENSE)
    return {
        "branch_id": branch_id,
        "income": income,
        "expense": expense,
        "balance": income - expense,
    }


def reverse_cash_transaction(transaction_id: int, *, actor_user_id: int | None) -> CashTransaction:
    """
    Cancel a cash movement by appending its compensating row.

    Raises:
        NotFoundError: unknown transaction
        ConflictError: the transaction is itself a reversal, or was already reversed
    """
    original = lock_for_update(
        db.session.query(CashTransaction).filter_by(id=transaction_id)
    ).first()
    if not original:
        raise NotFoundError(f"Cash transaction {transaction_id} not found")
    if original.reverses_transaction_id is not None:
        raise ConflictError(f"Transaction {transaction_id} is a reversal and cannot be reversed")
    already = db.session.query(CashTransaction.id).filter_by(reverses_transaction_id=transaction_id).first()
    if already:
        raise ConflictError(f"Transaction {transaction_id} was already reversed by #{already.id}")

    try:
        reversal = _reverse(original, event_type="MANUAL_REVERSAL", actor_user_id=actor_user_id)
        db.session.commit()
    except IntegrityError:
        # Concurrent reversal won the unique reverses_transaction_id slot
        db.session.rollback()
        raise ConflictError(f"Transaction {transaction_id} was already reversed")
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise LedgerError(f"Failed to reverse transaction {transaction_id}") from exc

    logger.info("Reversed cash transaction %s with #%s", transaction_id, reversal.id)
    return reversal


def list_debts(*, branch_id: int | None = None, status: str | None = None, parcel_id: int | None = None) -> list[Debt]:
    query = db.session.query(Debt)
    if branch_id is not None:
        query = query.filter(Debt.initiating_branch_id == branch_id)
    if status:
        query = query.filter(Debt.status == status)
    if parcel_id is not None:
        query = query.filter(Debt.parcel_id == parcel_id)
    return query.order_by(Debt.created_at.desc(), Debt.id.desc()).all()


def settle_debt(debt_id: int, *, actor_user_id: int | None) -> tuple[Debt, LedgerEntryIds]:
    debt = lock_for_update(db.session.query(Debt).filter_by(id=debt_id)).first()
    if not debt:
        raise NotFoundError(f"Debt {debt_id} not found")
    ids = record(DebtSettled(debt), actor_user_id=actor_user_id)
    return debt, ids


def record_expense(
    *,
    branch_id: int,
    amount: Decimal,
    description: str,
    date_spent: date | None,
    actor_user_id: int | None,
) -> tuple[Expense, LedgerEntryIds]:
    directory_service.require_active_branch(branch_id)
    ids = record(
        ExpenseRecorded(branch_id=branch_id, amount=amount, description=description, date_spent=date_spent),
        actor_user_id=actor_user_id,
    )
    return db.session.get(Expense, ids.expense_ids[0]), ids
