# Overview: Service-layer operations for the parcel status lifecycle; drives the ledger side effects.

"""
Courier Parcel Lifecycle Service

================================================================================
PURPOSE: Enforce the parcel state machine and fire ledger events exactly once
================================================================================

STATE MACHINE:
    PROCESSING -> IN_TRANSIT -> DELIVERED -> PICKED_UP
    PROCESSING | IN_TRANSIT -> CANCELLED

    PROCESSING: accepted at the origin branch, may still be edited
    IN_TRANSIT: handed to a driver (usually through a manifest)
    DELIVERED:  arrived at destination; revenue is booked here
    PICKED_UP:  collected by the receiver (terminal)
    CANCELLED:  withdrawn; earlier ledger effects are compensated (terminal)

RULES:
1. Only the edges above are legal; anything else raises IllegalTransitionError
2. Requesting the current state again raises DuplicateTransitionError and has
   no side effects (double submits never book revenue twice)
3. Status update, ParcelLog row and ledger entries are one atomic unit
4. parcel_logs has a unique (parcel_id, status) constraint; a concurrent
   duplicate that slips past the state check fails at flush

================================================================================
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Manifest, ManifestParcel, Parcel, ParcelLog
from ..errors import ConcurrencyConflict, DuplicateTransitionError, IllegalTransitionError, NotFoundError
from ..validation import ValidationError
from . import directory_service, ledger_service, revenue_service
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)

VALID_STATUSES = {"PROCESSING", "IN_TRANSIT", "DELIVERED", "PICKED_UP", "CANCELLED"}
TERMINAL_STATUSES = {"PICKED_UP", "CANCELLED"}

ALLOWED_TRANSITIONS = {
    "PROCESSING": {"IN_TRANSIT", "CANCELLED"},
    "IN_TRANSIT": {"DELIVERED", "CANCELLED"},
    "DELIVERED": {"PICKED_UP"},
    "PICKED_UP": set(),
    "CANCELLED": set(),
}

# Manifests a parcel can still be detached from
OPEN_MANIFEST_STATUSES = {"PROCESSING", "PRINTED", "IN_TRANSIT"}


def validate_status(status: str) -> None:
    """
    Raises:
        ValidationError: if status is not one of VALID_STATUSES
    """
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check an edge of the state machine.

    A transition to the same state is NOT allowed; callers report it as a
    duplicate request.
    """
    validate_status(from_status)
    validate_status(to_status)
    return to_status in ALLOWED_TRANSITIONS[from_status]


def _validate_directory(parcel: Parcel, target_status: str, driver_id: str | None) -> None:
    directory_service.require_active_branch(parcel.origin_branch_id)
    directory_service.require_active_branch(parcel.destination_branch_id)

    if target_status == "CANCELLED":
        return
    if driver_id:
        directory_service.require_active_driver(driver_id)
    elif parcel.assigned_driver_id:
        directory_service.require_active_driver(parcel.assigned_driver_id)


def _detach_from_open_manifests(parcel: Parcel) -> list[str]:
    links = (
        db.session.query(ManifestParcel)
        .join(Manifest, Manifest.id == ManifestParcel.manifest_id)
        .filter(
            ManifestParcel.parcel_id == parcel.id,
            Manifest.status.in_(OPEN_MANIFEST_STATUSES),
        )
        .all()
    )
    manifest_ids = [link.manifest_id for link in links]
    for link in links:
        db.session.delete(link)
    return manifest_ids


def transition(
    parcel_id: int,
    target_status: str,
    *,
    actor_user_id: int | None,
    note: str | None = None,
    driver_id: str | None = None,
    commit: bool = True,
) -> Parcel:
    """
    Move a parcel to target_status.

    Args:
        parcel_id: Parcel to transition
        target_status: Requested status
        actor_user_id: User recorded on the log and ledger rows
        note: Optional free text stored on the ParcelLog row
        driver_id: Assign this driver as part of the transition
        commit: Commit on success (False = flush only, for callers batching
            several transitions into one unit, e.g., manifest dispatch)

    Returns:
        The updated parcel

    Raises:
        NotFoundError: parcel, branch or driver missing
        ValidationError: unknown status, or inactive branch/driver
        DuplicateTransitionError: parcel is already in target_status
        IllegalTransitionError: not an edge of the state machine
        LedgerError: ledger side effects failed (everything rolled back)
    """
    validate_status(target_status)

    try:
        parcel = lock_for_update(db.session.query(Parcel).filter_by(id=parcel_id)).first()
        if not parcel:
            raise NotFoundError(f"Parcel {parcel_id} not found", parcel_id=parcel_id)

        current = parcel.status
        if current == target_status:
            raise DuplicateTransitionError(
                f"Parcel {parcel.tracking_number} is already {target_status}",
                current=current,
                requested=target_status,
            )
        if not can_transition(current, target_status):
            raise IllegalTransitionError(
                f"Cannot move parcel {parcel.tracking_number} from {current} to {target_status}",
                current=current,
                requested=target_status,
            )

        _validate_directory(parcel, target_status, driver_id)

        if driver_id:
            parcel.assigned_driver_id = driver_id
        parcel.status = target_status
        if target_status == "DELIVERED":
            parcel.driver_commission = revenue_service.split(parcel.shipping_cost, parcel.shipping_tax).driver_share

        db.session.add(ParcelLog(
            parcel_id=parcel.id,
            status=target_status,
            note=note,
            updated_by_user_id=actor_user_id,
        ))
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateTransitionError(
                f"Parcel {parcel_id} has already entered {target_status}",
                current=target_status,
                requested=target_status,
            )
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrencyConflict(f"Parcel {parcel_id} was modified concurrently") from exc

        if target_status == "DELIVERED":
            ledger_service.record(ledger_service.ParcelDelivered(parcel), actor_user_id=actor_user_id, commit=False)
        elif target_status == "CANCELLED":
            detached = _detach_from_open_manifests(parcel)
            if detached:
                logger.info("Parcel %s detached from manifests %s", parcel.tracking_number, detached)
            ledger_service.record(ledger_service.ParcelCancelled(parcel), actor_user_id=actor_user_id, commit=False)

        if commit:
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Parcel %s: %s -> %s (user %s)", parcel.tracking_number, current, target_status, actor_user_id)
    return parcel


def get_parcel_logs(parcel_id: int) -> list[ParcelLog]:
    if not db.session.get(Parcel, parcel_id):
        raise NotFoundError(f"Parcel {parcel_id} not found", parcel_id=parcel_id)
    return (
        db.session.query(ParcelLog)
        .filter_by(parcel_id=parcel_id)
        .order_by(ParcelLog.id)
        .all()
    )
