# Overview: Service-layer operations for parcels; intake, edits, COD collection and lookups.

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Parcel, ParcelLog
from ..errors import NotFoundError
from ..validation import ModelValidationPolicy, ValidationError, ConflictError, validate_payload
from . import directory_service, ledger_service, revenue_service, sequence_service
from .concurrency import lock_for_update, run_with_retry
from .lifecycle_service import VALID_STATUSES


logger = logging.getLogger(__name__)

PAYMENT_TYPES = {"PREPAID", "COD", "POSTPAID"}
COD_COLLECTABLE_STATUSES = {"IN_TRANSIT", "DELIVERED", "PICKED_UP"}

PARCEL_POLICY = ModelValidationPolicy(
    writable_fields={
        "sender_name",
        "sender_phone",
        "receiver_name",
        "receiver_phone",
        "receiver_city",
        "receiver_district",
        "notes",
        "origin_branch_id",
        "destination_branch_id",
        "shipping_cost",
        "shipping_tax",
        "payment_type",
        "assigned_driver_id",
    },
    required_on_create={
        "sender_name",
        "receiver_name",
        "receiver_city",
        "origin_branch_id",
        "destination_branch_id",
        "shipping_cost",
        "payment_type",
    },
)

# Routing and money are frozen once the parcel leaves PROCESSING
EDITABLE_STATUSES = {"PROCESSING"}


def _normalize_payment_type(patch: dict) -> None:
    if "payment_type" in patch:
        payment_type = (patch["payment_type"] or "").upper()
        if payment_type not in PAYMENT_TYPES:
            raise ValidationError(
                f"Invalid payment_type '{patch['payment_type']}'. Must be one of: {', '.join(sorted(PAYMENT_TYPES))}"
            )
        patch["payment_type"] = payment_type


def _validate_routing(patch: dict) -> None:
    if "origin_branch_id" in patch:
        directory_service.require_active_branch(patch["origin_branch_id"])
    if "destination_branch_id" in patch:
        directory_service.require_active_branch(patch["destination_branch_id"])
    if patch.get("assigned_driver_id"):
        directory_service.require_active_driver(patch["assigned_driver_id"])


def get_parcel(parcel_id: int) -> Parcel:
    parcel = db.session.get(Parcel, parcel_id)
    if not parcel:
        raise NotFoundError(f"Parcel {parcel_id} not found", parcel_id=parcel_id)
    return parcel


def get_parcel_by_tracking_number(tracking_number: str) -> Parcel:
    parcel = db.session.query(Parcel).filter_by(tracking_number=(tracking_number or "").strip()).first()
    if not parcel:
        raise NotFoundError(f"Parcel {tracking_number} not found", tracking_number=tracking_number)
    return parcel


def create_parcel(tenant_key: str, data: dict, *, actor_user_id: int | None) -> Parcel:
    """
    Accept a new parcel at its origin branch.

    Validates input and directory references, issues the tracking number,
    derives driver_commission and writes the parcel with its PROCESSING log
    row in one transaction. A lost race on the tracking sequence rolls the
    whole unit back and retries it with backoff.
    """
    patch = validate_payload(model=Parcel, payload=data, policy=PARCEL_POLICY, partial=False)
    _normalize_payment_type(patch)
    patch.setdefault("shipping_tax", 0)
    if patch["shipping_tax"] is None:
        patch["shipping_tax"] = 0
    split = revenue_service.split(patch["shipping_cost"], patch["shipping_tax"])
    _validate_routing(patch)

    def _op() -> Parcel:
        tracking_number = sequence_service.issue_next(tenant_key, "TRACKING")
        parcel = Parcel(
            tenant_key=tenant_key,
            tracking_number=tracking_number,
            status="PROCESSING",
            is_paid=patch["payment_type"] == "PREPAID",
            driver_commission=split.driver_share,
            added_by_user_id=actor_user_id,
            **patch,
        )
        db.session.add(parcel)
        db.session.flush()
        db.session.add(ParcelLog(
            parcel_id=parcel.id,
            status="PROCESSING",
            note="Parcel accepted",
            updated_by_user_id=actor_user_id,
        ))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"Tracking number {tracking_number} already exists")
        return parcel

    parcel = run_with_retry(_op, backoff_base=current_app.config.get("SEQUENCE_RETRY_BACKOFF", 0.05))
    logger.info("Parcel %s created at branch %s", parcel.tracking_number, parcel.origin_branch_id)
    return parcel


def update_parcel_details(parcel_id: int, data: dict, *, actor_user_id: int | None) -> Parcel:
    """Edit a parcel while it is still PROCESSING. tracking_number never changes."""
    patch = validate_payload(model=Parcel, payload=data, policy=PARCEL_POLICY, partial=True)
    _normalize_payment_type(patch)
    if "shipping_tax" in patch and patch["shipping_tax"] is None:
        patch["shipping_tax"] = 0

    parcel = lock_for_update(db.session.query(Parcel).filter_by(id=parcel_id)).first()
    if not parcel:
        raise NotFoundError(f"Parcel {parcel_id} not found", parcel_id=parcel_id)
    if parcel.status not in EDITABLE_STATUSES:
        db.session.rollback()
        raise ConflictError(f"Parcel {parcel.tracking_number} is {parcel.status} and can no longer be edited")

    _validate_routing(patch)
    cost = patch.get("shipping_cost", parcel.shipping_cost)
    tax = patch.get("shipping_tax", parcel.shipping_tax)
    split = revenue_service.split(cost, tax)

    for key, value in patch.items():
        setattr(parcel, key, value)
    parcel.driver_commission = split.driver_share
    if "payment_type" in patch:
        parcel.is_paid = parcel.payment_type == "PREPAID"
    db.session.commit()

    logger.info("Parcel %s updated by user %s: %s", parcel.tracking_number, actor_user_id, sorted(patch))
    return parcel


def collect_cod_payment(parcel_id: int, *, actor_user_id: int | None) -> Parcel:
    """
    Mark a COD parcel paid and book the income at the destination branch.

    Raises:
        ValidationError: the parcel is not COD
        ConflictError: already paid, or not yet dispatched / cancelled
    """
    parcel = lock_for_update(db.session.query(Parcel).filter_by(id=parcel_id)).first()
    if not parcel:
        raise NotFoundError(f"Parcel {parcel_id} not found", parcel_id=parcel_id)
    if parcel.payment_type != "COD":
        raise ValidationError(f"Parcel {parcel.tracking_number} is not cash on delivery")
    if parcel.is_paid:
        raise ConflictError(f"Parcel {parcel.tracking_number} is already paid")
    if parcel.status not in COD_COLLECTABLE_STATUSES:
        raise ConflictError(f"Cannot collect payment for parcel {parcel.tracking_number} in status {parcel.status}")

    parcel.is_paid = True
    ledger_service.record(ledger_service.CodCollected(parcel), actor_user_id=actor_user_id)
    logger.info("COD collected for parcel %s", parcel.tracking_number)
    return parcel


def search_parcels(
    *,
    q: str | None = None,
    status: str | None = None,
    branch_id: int | None = None,
    tenant_key: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Parcel]:
    """Match q against tracking number, sender/receiver names and receiver phone."""
    query = db.session.query(Parcel)
    if tenant_key:
        query = query.filter(Parcel.tenant_key == tenant_key)
    if status:
        if status not in VALID_STATUSES:
            raise ValidationError(f"Invalid status '{status}'")
        query = query.filter(Parcel.status == status)
    if branch_id is not None:
        query = query.filter(or_(Parcel.origin_branch_id == branch_id, Parcel.destination_branch_id == branch_id))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(
            Parcel.tracking_number.ilike(like),
            Parcel.sender_name.ilike(like),
            Parcel.receiver_name.ilike(like),
            Parcel.receiver_phone.ilike(like),
        ))
    return (
        query.order_by(Parcel.created_at.desc(), Parcel.id.desc())
        .offset(offset)
        .limit(min(max(limit, 1), 500))
        .all()
    )


def status_counts(*, branch_id: int | None = None, tenant_key: str | None = None) -> dict:
    query = db.session.query(Parcel.status, func.count(Parcel.id))
    if tenant_key:
        query = query.filter(Parcel.tenant_key == tenant_key)
    if branch_id is not None:
        query = query.filter(or_(Parcel.origin_branch_id == branch_id, Parcel.destination_branch_id == branch_id))
    counts = {status: 0 for status in sorted(VALID_STATUSES)}
    for status, count in query.group_by(Parcel.status).all():
        counts[status] = count
    return counts
