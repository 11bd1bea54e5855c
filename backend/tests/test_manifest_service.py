# Overview: Pytest coverage for manifest dispatch, cancellation and settlement.

from decimal import Decimal

import pytest
from courier.errors import DuplicateTransitionError, IllegalTransitionError, IncompleteManifestError
from courier.models import CashTransaction, Expense, ManifestParcel
from courier.services import lifecycle_service, manifest_service, parcel_service
from courier.validation import ConflictError


def _open_manifest(origin, driver, parcels):
    return manifest_service.create_manifest(
        "default",
        branch_id=origin.id,
        driver_id=driver.id,
        city="Basra",
        parcel_ids=[p.id for p in parcels],
        actor_user_id=1,
    )


def _dispatch(manifest_id):
    manifest_service.advance_status(manifest_id, "PRINTED", actor_user_id=1)
    return manifest_service.advance_status(manifest_id, "IN_TRANSIT", actor_user_id=1)


class TestManifestLifecycle:
    def test_create_issues_sequence_id(self, db_session, make_parcel, origin, driver):
        parcel = make_parcel()
        manifest = _open_manifest(origin, driver, [parcel])
        assert manifest.id == "MAN1"
        assert manifest.status == "PROCESSING"
        assert [p.id for p in manifest.parcels] == [parcel.id]

    def test_dispatch_moves_parcels_in_transit(self, db_session, make_parcel, origin, driver):
        parcels = [make_parcel(), make_parcel()]
        manifest = _open_manifest(origin, driver, parcels)
        manifest = _dispatch(manifest.id)

        assert manifest.status == "IN_TRANSIT"
        assert manifest.dispatched_at is not None
        for parcel in parcels:
            reloaded = parcel_service.get_parcel(parcel.id)
            assert reloaded.status == "IN_TRANSIT"
            assert reloaded.assigned_driver_id == driver.id

    def test_empty_manifest_cannot_dispatch(self, db_session, counters, origin, driver):
        manifest = _open_manifest(origin, driver, [])
        manifest_service.advance_status(manifest.id, "PRINTED", actor_user_id=1)
        with pytest.raises(ConflictError):
            manifest_service.advance_status(manifest.id, "IN_TRANSIT", actor_user_id=1)
        assert manifest_service.get_manifest(manifest.id).status == "PRINTED"

    def test_skipping_print_is_illegal(self, db_session, make_parcel, origin, driver):
        manifest = _open_manifest(origin, driver, [make_parcel()])
        with pytest.raises(IllegalTransitionError):
            manifest_service.advance_status(manifest.id, "IN_TRANSIT", actor_user_id=1)

    def test_parcel_on_open_manifest_cannot_join_another(self, db_session, make_parcel, origin, driver):
        parcel = make_parcel()
        first = _open_manifest(origin, driver, [parcel])
        with pytest.raises(ConflictError):
            _open_manifest(origin, driver, [parcel])

        links = db_session.query(ManifestParcel).filter_by(parcel_id=parcel.id).all()
        assert [link.manifest_id for link in links] == [first.id]

    def test_failed_add_attaches_nothing(self, db_session, make_parcel, origin, driver):
        free, busy = make_parcel(), make_parcel()
        _open_manifest(origin, driver, [busy])
        second = _open_manifest(origin, driver, [])

        with pytest.raises(ConflictError):
            manifest_service.add_parcels(second.id, [free.id, busy.id], actor_user_id=1)
        assert db_session.query(ManifestParcel).filter_by(manifest_id=second.id).count() == 0

    def test_cancel_releases_parcels(self, db_session, make_parcel, origin, driver):
        parcel = make_parcel(assigned_driver_id=driver.id)
        manifest = _open_manifest(origin, driver, [parcel])
        manifest_service.cancel_manifest(manifest.id, actor_user_id=1)

        assert manifest_service.get_manifest(manifest.id).status == "CANCELLED"
        assert parcel_service.get_parcel(parcel.id).assigned_driver_id is None
        # Free to join a new manifest
        again = _open_manifest(origin, driver, [parcel])
        assert again.id == "MAN2"

    def test_remove_parcel(self, db_session, make_parcel, origin, driver):
        parcel = make_parcel()
        manifest = _open_manifest(origin, driver, [parcel])
        manifest_service.remove_parcel(manifest.id, parcel.id, actor_user_id=1)
        assert manifest_service.get_manifest(manifest.id).parcels == []

    def test_cancelling_parcel_detaches_it(self, db_session, make_parcel, origin, driver):
        parcel = make_parcel()
        manifest = _open_manifest(origin, driver, [parcel])
        lifecycle_service.transition(parcel.id, "CANCELLED", actor_user_id=1)
        assert db_session.query(ManifestParcel).filter_by(manifest_id=manifest.id).count() == 0


class TestSettlement:
    def test_unpaid_cod_excluded_from_received(self, db_session, make_parcel, origin, driver):
        cod = make_parcel(payment_type="COD", shipping_cost="5000")
        prepaid = make_parcel(payment_type="PREPAID", shipping_cost="3000")
        manifest = _open_manifest(origin, driver, [cod, prepaid])
        _dispatch(manifest.id)

        summary = manifest_service.settle(manifest.id, actor_user_id=7)

        assert summary.total_shipping_cost == Decimal("8000")
        assert summary.total_received == Decimal("3000")
        # 5600 -> 6000, 2400 -> 2000
        assert summary.driver_commission_total == Decimal("6000")
        assert summary.office_revenue_total == Decimal("2000")
        assert summary.residual == Decimal("0")
        assert summary.parcel_count == 2

        settled = manifest_service.get_manifest(manifest.id)
        assert settled.status == "COMPLETED"
        assert settled.total_received == Decimal("3000")
        assert settled.settled_by_user_id == 7
        for parcel in (cod, prepaid):
            assert parcel_service.get_parcel(parcel.id).status == "DELIVERED"

    def test_settlement_books_commission_once(self, db_session, make_parcel, origin, driver):
        manifest = _open_manifest(origin, driver, [make_parcel(shipping_cost="100000", shipping_tax="10000")])
        _dispatch(manifest.id)
        manifest_service.settle(manifest.id, actor_user_id=1)

        expense = db_session.query(Expense).filter_by(manifest_id=manifest.id).one()
        assert expense.expense_type == "PARCEL_COMMISSION"
        assert expense.amount == Decimal("63000")
        commission_rows = (
            db_session.query(CashTransaction)
            .filter_by(manifest_id=manifest.id, event_type="MANIFEST_SETTLED")
            .all()
        )
        assert len(commission_rows) == 1
        assert commission_rows[0].transaction_type == "EXPENSE"

        with pytest.raises(DuplicateTransitionError):
            manifest_service.settle(manifest.id, actor_user_id=1)
        assert db_session.query(Expense).filter_by(manifest_id=manifest.id).count() == 1

    def test_processing_parcels_block_settlement(self, db_session, make_parcel, origin, driver):
        manifest = _open_manifest(origin, driver, [make_parcel()])
        with pytest.raises(IncompleteManifestError):
            manifest_service.settle(manifest.id, actor_user_id=1)
        assert manifest_service.get_manifest(manifest.id).status == "PROCESSING"

    def test_cancelled_manifest_cannot_settle(self, db_session, make_parcel, origin, driver):
        manifest = _open_manifest(origin, driver, [make_parcel()])
        manifest_service.cancel_manifest(manifest.id, actor_user_id=1)
        with pytest.raises(IllegalTransitionError):
            manifest_service.settle(manifest.id, actor_user_id=1)

    def test_advance_to_completed_delegates_to_settle(self, db_session, make_parcel, origin, driver):
        manifest = _open_manifest(origin, driver, [make_parcel()])
        _dispatch(manifest.id)
        completed = manifest_service.advance_status(manifest.id, "COMPLETED", actor_user_id=1)
        assert completed.status == "COMPLETED"
        assert completed.driver_commission_total == Decimal("7000")
