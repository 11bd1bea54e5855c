# Overview: Pytest coverage for the parcel state machine and its ledger side effects.

from decimal import Decimal

import pytest
from courier.errors import DuplicateTransitionError, IllegalTransitionError, NotFoundError
from courier.models import CashTransaction, Debt, ParcelLog
from courier.services import directory_service, ledger_service, lifecycle_service, parcel_service
from courier.validation import ConflictError, ValidationError


class TestStateMachine:
    def test_allowed_edges(self):
        assert lifecycle_service.can_transition("PROCESSING", "IN_TRANSIT")
        assert lifecycle_service.can_transition("IN_TRANSIT", "DELIVERED")
        assert lifecycle_service.can_transition("DELIVERED", "PICKED_UP")
        assert lifecycle_service.can_transition("IN_TRANSIT", "CANCELLED")

    def test_forbidden_edges(self):
        assert not lifecycle_service.can_transition("DELIVERED", "PROCESSING")
        assert not lifecycle_service.can_transition("DELIVERED", "CANCELLED")
        assert not lifecycle_service.can_transition("PICKED_UP", "DELIVERED")
        assert not lifecycle_service.can_transition("IN_TRANSIT", "IN_TRANSIT")

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            lifecycle_service.validate_status("LOST")


class TestTransition:
    def test_parcel_starts_processing_with_log(self, db_session, make_parcel):
        parcel = make_parcel()
        assert parcel.status == "PROCESSING"
        assert parcel.tracking_number == "GT100001"
        logs = lifecycle_service.get_parcel_logs(parcel.id)
        assert [log.status for log in logs] == ["PROCESSING"]

    def test_full_path_writes_one_log_per_status(self, db_session, make_parcel, driver):
        parcel = make_parcel()
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)
        lifecycle_service.transition(parcel.id, "PICKED_UP", actor_user_id=1, note="Receiver signed")

        logs = lifecycle_service.get_parcel_logs(parcel.id)
        assert [log.status for log in logs] == ["PROCESSING", "IN_TRANSIT", "DELIVERED", "PICKED_UP"]
        assert logs[-1].note == "Receiver signed"
        assert parcel.assigned_driver_id == driver.id

    def test_duplicate_delivery_books_revenue_once(self, db_session, make_parcel, driver):
        parcel = make_parcel(shipping_cost="20000", shipping_tax="2000")
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)

        with pytest.raises(DuplicateTransitionError):
            lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)

        delivered_logs = db_session.query(ParcelLog).filter_by(parcel_id=parcel.id, status="DELIVERED").count()
        assert delivered_logs == 1
        income = db_session.query(CashTransaction).filter_by(parcel_id=parcel.id).all()
        assert len(income) == 1
        assert income[0].transaction_type == "INCOME"
        assert income[0].amount == Decimal("20000")
        assert income[0].branch_id == parcel.origin_branch_id

    def test_delivery_sets_driver_commission(self, db_session, make_parcel, driver):
        parcel = make_parcel(shipping_cost="100000", shipping_tax="10000")
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)
        assert parcel.driver_commission == Decimal("63000")

    def test_illegal_transition(self, db_session, make_parcel, driver):
        parcel = make_parcel()
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)

        with pytest.raises(IllegalTransitionError) as excinfo:
            lifecycle_service.transition(parcel.id, "PROCESSING", actor_user_id=1)
        assert excinfo.value.current == "DELIVERED"
        assert excinfo.value.requested == "PROCESSING"

        reloaded = parcel_service.get_parcel(parcel.id)
        assert reloaded.status == "DELIVERED"

    def test_unknown_parcel(self, db_session, counters):
        with pytest.raises(NotFoundError):
            lifecycle_service.transition(999, "IN_TRANSIT", actor_user_id=1)

    def test_inactive_destination_blocks_transition(self, db_session, make_parcel, destination, driver):
        parcel = make_parcel()
        directory_service.set_branch_active(destination.id, False)
        with pytest.raises(ValidationError):
            lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        assert parcel_service.get_parcel(parcel.id).status == "PROCESSING"

    def test_inactive_driver_blocks_dispatch(self, db_session, make_parcel, driver):
        parcel = make_parcel()
        directory_service.set_driver_active(driver.id, False)
        with pytest.raises(ValidationError):
            lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)


class TestPaymentTypes:
    def test_cod_delivery_books_nothing(self, db_session, make_parcel, driver):
        parcel = make_parcel(payment_type="COD")
        assert parcel.is_paid is False
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)
        assert db_session.query(CashTransaction).count() == 0

    def test_postpaid_delivery_opens_debt(self, db_session, make_parcel, driver):
        parcel = make_parcel(payment_type="POSTPAID", shipping_cost="15000")
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        lifecycle_service.transition(parcel.id, "DELIVERED", actor_user_id=1)

        assert db_session.query(CashTransaction).count() == 0
        debt = db_session.query(Debt).filter_by(parcel_id=parcel.id).one()
        assert debt.status == "OUTSTANDING"
        assert debt.movement_type == "DEBTOR"
        assert debt.amount == Decimal("15000")
        assert debt.debtor_name == "Omar"

    def test_cod_collection_books_income_at_destination(self, db_session, make_parcel, driver, destination):
        parcel = make_parcel(payment_type="COD", shipping_cost="7000")
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        parcel_service.collect_cod_payment(parcel.id, actor_user_id=1)

        assert parcel.is_paid is True
        tx = db_session.query(CashTransaction).filter_by(parcel_id=parcel.id).one()
        assert tx.event_type == "COD_COLLECTED"
        assert tx.branch_id == destination.id

        with pytest.raises(ConflictError):
            parcel_service.collect_cod_payment(parcel.id, actor_user_id=1)

    def test_cod_cannot_be_collected_before_dispatch(self, db_session, make_parcel):
        parcel = make_parcel(payment_type="COD")
        with pytest.raises(ConflictError):
            parcel_service.collect_cod_payment(parcel.id, actor_user_id=1)


class TestCancellation:
    def test_cancel_reverses_collected_cod(self, db_session, make_parcel, driver, destination):
        parcel = make_parcel(payment_type="COD", shipping_cost="7000")
        lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1, driver_id=driver.id)
        parcel_service.collect_cod_payment(parcel.id, actor_user_id=1)

        lifecycle_service.transition(parcel.id, "CANCELLED", actor_user_id=2, note="Receiver refused")

        rows = (
            db_session.query(CashTransaction)
            .filter_by(parcel_id=parcel.id)
            .order_by(CashTransaction.id)
            .all()
        )
        assert [r.transaction_type for r in rows] == ["INCOME", "EXPENSE"]
        assert rows[1].reverses_transaction_id == rows[0].id
        assert rows[1].event_type == "PARCEL_CANCELLED"
        assert rows[1].added_by_user_id == 2

        balance = ledger_service.cashbox_balance(destination.id)
        assert balance["balance"] == Decimal("0")
        assert parcel_service.get_parcel(parcel.id).is_paid is False

    def test_cancel_processing_parcel_has_no_ledger_effect(self, db_session, make_parcel):
        parcel = make_parcel()
        lifecycle_service.transition(parcel.id, "CANCELLED", actor_user_id=1)
        assert parcel.status == "CANCELLED"
        assert db_session.query(CashTransaction).count() == 0

    def test_cancelled_is_terminal(self, db_session, make_parcel):
        parcel = make_parcel()
        lifecycle_service.transition(parcel.id, "CANCELLED", actor_user_id=1)
        with pytest.raises(IllegalTransitionError):
            lifecycle_service.transition(parcel.id, "IN_TRANSIT", actor_user_id=1)
