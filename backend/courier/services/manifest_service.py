# Overview: Service-layer operations for driver manifests; dispatch, cancellation and settlement.

"""
Manifest lifecycle and settlement.

STATE MACHINE:
    PROCESSING -> PRINTED -> IN_TRANSIT -> COMPLETED
    PROCESSING | PRINTED | IN_TRANSIT -> CANCELLED

- A parcel is attached to at most one open manifest (PROCESSING, PRINTED,
  IN_TRANSIT) at a time.
- Dispatch (-> IN_TRANSIT) moves every attached PROCESSING parcel to
  IN_TRANSIT through the parcel lifecycle and assigns the manifest driver.
- Settlement (-> COMPLETED) delivers the remaining IN_TRANSIT parcels,
  splits the manifest-level totals once (not per parcel), snapshots the
  totals on the manifest and books the driver commission, all in one
  transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Manifest, ManifestParcel, Parcel
from ..errors import (
    ConcurrencyConflict,
    DuplicateTransitionError,
    IllegalTransitionError,
    IncompleteManifestError,
    NotFoundError,
)
from ..validation import ConflictError, ValidationError
from ..time_utils import utcnow
from . import directory_service, ledger_service, lifecycle_service, revenue_service, sequence_service
from .concurrency import lock_for_update, run_with_retry


logger = logging.getLogger(__name__)

MANIFEST_STATUSES = {"PROCESSING", "PRINTED", "IN_TRANSIT", "COMPLETED", "CANCELLED"}
OPEN_STATUSES = lifecycle_service.OPEN_MANIFEST_STATUSES
EDITABLE_STATUSES = {"PROCESSING", "PRINTED"}

MANIFEST_TRANSITIONS = {
    "PROCESSING": {"PRINTED", "CANCELLED"},
    "PRINTED": {"IN_TRANSIT", "CANCELLED"},
    "IN_TRANSIT": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}


@dataclass(frozen=True)
class SettlementSummary:
    manifest_id: str
    total_shipping_cost: Decimal
    total_tax: Decimal
    total_received: Decimal
    driver_commission_total: Decimal
    office_revenue_total: Decimal
    residual: Decimal
    parcel_count: int

    def to_dict(self) -> dict:
        return {
            "manifest_id": self.manifest_id,
            "total_shipping_cost": str(self.total_shipping_cost),
            "total_tax": str(self.total_tax),
            "total_received": str(self.total_received),
            "driver_commission_total": str(self.driver_commission_total),
            "office_revenue_total": str(self.office_revenue_total),
            "residual": str(self.residual),
            "parcel_count": self.parcel_count,
        }


def validate_manifest_status(status: str) -> None:
    if status not in MANIFEST_STATUSES:
        raise ValidationError(
            f"Invalid manifest status '{status}'. Must be one of: {', '.join(sorted(MANIFEST_STATUSES))}"
        )


def _check_transition(manifest: Manifest, target_status: str) -> None:
    if manifest.status == target_status:
        raise DuplicateTransitionError(
            f"Manifest {manifest.id} is already {target_status}",
            current=manifest.status,
            requested=target_status,
        )
    if target_status not in MANIFEST_TRANSITIONS[manifest.status]:
        raise IllegalTransitionError(
            f"Cannot move manifest {manifest.id} from {manifest.status} to {target_status}",
            current=manifest.status,
            requested=target_status,
        )


def _lock_manifest(manifest_id: str) -> Manifest:
    manifest = lock_for_update(db.session.query(Manifest).filter_by(id=manifest_id)).first()
    if not manifest:
        raise NotFoundError(f"Manifest {manifest_id} not found", manifest_id=manifest_id)
    return manifest


def _commit(manifest_id: str) -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyConflict(f"Manifest {manifest_id} was modified concurrently") from exc


def _attached_parcels(manifest_id: str) -> list[Parcel]:
    return (
        db.session.query(Parcel)
        .join(ManifestParcel, ManifestParcel.parcel_id == Parcel.id)
        .filter(ManifestParcel.manifest_id == manifest_id)
        .order_by(Parcel.id)
        .all()
    )


def _attach(manifest: Manifest, parcel_ids) -> list[Parcel]:
    attached = []
    seen = set()
    for parcel_id in parcel_ids:
        if parcel_id in seen:
            continue
        seen.add(parcel_id)

        parcel = lock_for_update(db.session.query(Parcel).filter_by(id=parcel_id)).first()
        if not parcel:
            raise NotFoundError(f"Parcel {parcel_id} not found", parcel_id=parcel_id)
        if parcel.tenant_key != manifest.tenant_key:
            raise ValidationError(f"Parcel {parcel.tracking_number} belongs to another tenant")
        if parcel.status != "PROCESSING":
            raise ConflictError(f"Parcel {parcel.tracking_number} is {parcel.status}; only PROCESSING parcels can be added")

        open_link = (
            db.session.query(ManifestParcel.manifest_id)
            .join(Manifest, Manifest.id == ManifestParcel.manifest_id)
            .filter(
                ManifestParcel.parcel_id == parcel.id,
                Manifest.status.in_(OPEN_STATUSES),
            )
            .first()
        )
        if open_link:
            raise ConflictError(
                f"Parcel {parcel.tracking_number} is already on open manifest {open_link.manifest_id}"
            )

        db.session.add(ManifestParcel(manifest_id=manifest.id, parcel_id=parcel.id))
        attached.append(parcel)

    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Parcel already attached to manifest {manifest.id}")
    return attached


def get_manifest(manifest_id: str) -> Manifest:
    manifest = db.session.get(Manifest, manifest_id)
    if not manifest:
        raise NotFoundError(f"Manifest {manifest_id} not found", manifest_id=manifest_id)
    return manifest


def list_manifests(*, branch_id: int | None = None, status: str | None = None, limit: int = 100) -> list[Manifest]:
    query = db.session.query(Manifest)
    if branch_id is not None:
        query = query.filter(Manifest.branch_id == branch_id)
    if status:
        validate_manifest_status(status)
        query = query.filter(Manifest.status == status)
    return query.order_by(Manifest.created_at.desc(), Manifest.id.desc()).limit(min(max(limit, 1), 500)).all()


def create_manifest(
    tenant_key: str,
    *,
    branch_id: int,
    driver_id: str,
    city: str | None = None,
    parcel_ids=(),
    actor_user_id: int | None,
) -> Manifest:
    """Open a manifest with a sequence-issued id and attach the given parcels."""
    directory_service.require_active_branch(branch_id)
    directory_service.require_active_driver(driver_id)

    def _op() -> Manifest:
        manifest_id = sequence_service.issue_next(tenant_key, "MANIFEST")
        manifest = Manifest(
            id=manifest_id,
            tenant_key=tenant_key,
            branch_id=branch_id,
            driver_id=driver_id,
            city=(city or "").strip() or None,
            status="PROCESSING",
            created_by_user_id=actor_user_id,
        )
        db.session.add(manifest)
        try:
            db.session.flush()
            _attach(manifest, parcel_ids or ())
            db.session.commit()
        except (ConflictError, NotFoundError, ValidationError):
            # The issued id goes back with the rest of the unit
            db.session.rollback()
            raise
        return manifest

    manifest = run_with_retry(_op, backoff_base=current_app.config.get("SEQUENCE_RETRY_BACKOFF", 0.05))
    logger.info("Manifest %s created for driver %s", manifest.id, driver_id)
    return manifest


def add_parcels(manifest_id: str, parcel_ids, *, actor_user_id: int | None) -> Manifest:
    try:
        manifest = _lock_manifest(manifest_id)
        if manifest.status not in EDITABLE_STATUSES:
            raise ConflictError(f"Manifest {manifest_id} is {manifest.status}; parcels can no longer be added")
        attached = _attach(manifest, parcel_ids)
        _commit(manifest_id)
    except Exception:
        db.session.rollback()
        raise
    logger.info("Manifest %s: %d parcel(s) added by user %s", manifest_id, len(attached), actor_user_id)
    return manifest


def remove_parcel(manifest_id: str, parcel_id: int, *, actor_user_id: int | None) -> Manifest:
    manifest = _lock_manifest(manifest_id)
    if manifest.status not in EDITABLE_STATUSES:
        raise ConflictError(f"Manifest {manifest_id} is {manifest.status}; parcels can no longer be removed")
    link = db.session.get(ManifestParcel, (manifest_id, parcel_id))
    if not link:
        raise NotFoundError(f"Parcel {parcel_id} is not on manifest {manifest_id}")
    db.session.delete(link)
    _commit(manifest_id)
    logger.info("Manifest %s: parcel %s removed by user %s", manifest_id, parcel_id, actor_user_id)
    return manifest


def advance_status(manifest_id: str, target_status: str, *, actor_user_id: int | None) -> Manifest:
    """
    Move a manifest along its state machine.

    COMPLETED is reached through settle() and CANCELLED through
    cancel_manifest(); both are accepted here and delegated.
    """
    validate_manifest_status(target_status)
    if target_status == "COMPLETED":
        settle(manifest_id, actor_user_id=actor_user_id)
        return get_manifest(manifest_id)
    if target_status == "CANCELLED":
        return cancel_manifest(manifest_id, actor_user_id=actor_user_id)

    try:
        manifest = _lock_manifest(manifest_id)
        _check_transition(manifest, target_status)
        now = utcnow()

        if target_status == "PRINTED":
            manifest.printed_at = now
        elif target_status == "IN_TRANSIT":
            directory_service.require_active_driver(manifest.driver_id)
            parcels = _attached_parcels(manifest_id)
            if not parcels:
                raise ConflictError(f"Manifest {manifest_id} has no parcels to dispatch")
            for parcel in parcels:
                if parcel.status == "PROCESSING":
                    lifecycle_service.transition(
                        parcel.id,
                        "IN_TRANSIT",
                        actor_user_id=actor_user_id,
                        driver_id=manifest.driver_id,
                        note=f"Dispatched on manifest {manifest_id}",
                        commit=False,
                    )
            manifest.dispatched_at = now

        manifest.status = target_status
        _commit(manifest_id)
    except Exception:
        db.session.rollback()
        raise

    logger.info("Manifest %s -> %s (user %s)", manifest_id, target_status, actor_user_id)
    return manifest


def cancel_manifest(manifest_id: str, *, actor_user_id: int | None) -> Manifest:
    """
    Cancel a non-terminal manifest.

    Parcels still PROCESSING are released (driver unassigned) and may join
    another manifest. Parcels already IN_TRANSIT keep their state.
    """
    try:
        manifest = _lock_manifest(manifest_id)
        _check_transition(manifest, "CANCELLED")

        released = 0
        for parcel in _attached_parcels(manifest_id):
            if parcel.status == "PROCESSING" and parcel.assigned_driver_id == manifest.driver_id:
                parcel.assigned_driver_id = None
                released += 1

        manifest.status = "CANCELLED"
        manifest.cancelled_at = utcnow()
        _commit(manifest_id)
    except Exception:
        db.session.rollback()
        raise

    logger.info("Manifest %s cancelled by user %s (%d parcel(s) released)", manifest_id, actor_user_id, released)
    return manifest


def settle(manifest_id: str, *, actor_user_id: int | None) -> SettlementSummary:
    """
    Complete a dispatched manifest and compute its settlement.

    total_received counts non-COD parcels and COD parcels already marked
    paid; unpaid COD parcels are still part of total_shipping_cost.

    Raises:
        IncompleteManifestError: an attached parcel is still PROCESSING
        IllegalTransitionError: manifest is not IN_TRANSIT
        DuplicateTransitionError: manifest is already COMPLETED
    """
    try:
        manifest = _lock_manifest(manifest_id)
        if manifest.status in ("COMPLETED", "CANCELLED"):
            _check_transition(manifest, "COMPLETED")

        parcels = [p for p in _attached_parcels(manifest_id) if p.status != "CANCELLED"]
        outstanding = [p.tracking_number for p in parcels if p.status == "PROCESSING"]
        if outstanding:
            raise IncompleteManifestError(
                f"Manifest {manifest_id} has {len(outstanding)} parcel(s) still PROCESSING",
                parcels=outstanding,
            )
        _check_transition(manifest, "COMPLETED")

        for parcel in parcels:
            if parcel.status == "IN_TRANSIT":
                lifecycle_service.transition(
                    parcel.id,
                    "DELIVERED",
                    actor_user_id=actor_user_id,
                    note=f"Delivered on settlement of manifest {manifest_id}",
                    commit=False,
                )

        total_cost = sum((p.shipping_cost for p in parcels), Decimal("0"))
        total_tax = sum((p.shipping_tax for p in parcels), Decimal("0"))
        total_received = sum(
            (p.shipping_cost for p in parcels if p.payment_type != "COD" or p.is_paid),
            Decimal("0"),
        )
        split = revenue_service.split(total_cost, total_tax)

        manifest.total_shipping_cost = total_cost
        manifest.total_tax = total_tax
        manifest.total_received = total_received
        manifest.driver_commission_total = split.driver_share
        manifest.office_revenue_total = split.office_share
        manifest.rounding_residual = split.residual
        manifest.status = "COMPLETED"
        manifest.completed_at = utcnow()
        manifest.settled_by_user_id = actor_user_id

        ledger_service.record(
            ledger_service.ManifestSettled(manifest, split.driver_share),
            actor_user_id=actor_user_id,
            commit=False,
        )
        _commit(manifest_id)
    except Exception:
        db.session.rollback()
        raise

    summary = SettlementSummary(
        manifest_id=manifest_id,
        total_shipping_cost=total_cost,
        total_tax=total_tax,
        total_received=total_received,
        driver_commission_total=split.driver_share,
        office_revenue_total=split.office_share,
        residual=split.residual,
        parcel_count=len(parcels),
    )
    logger.info(
        "Manifest %s settled: cost=%s received=%s driver=%s office=%s residual=%s",
        manifest_id, total_cost, total_received, split.driver_share, split.office_share, split.residual,
    )
    return summary
