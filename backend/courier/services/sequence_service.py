# Overview: Service-layer operations for tracking-number and manifest-id issuance.

"""
Sequence allocation.

Every tracking number and manifest id is issued from a SequenceCounter row
scoped by (tenant_key, kind). Issuance is a single atomic
UPDATE ... SET next_value = next_value + 1 followed by a read of the
incremented row inside the same transaction. The write lock taken by the
UPDATE serializes issuers of the same counter until the caller commits, so
no two callers can ever observe the same value. Counters of other tenants
are separate rows and do not contend.

Issuance never commits: the issued value belongs to the caller's unit of
work (e.g., the parcel insert) and disappears with it on rollback.
"""

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..extensions import db
from ..models import SequenceCounter
from ..errors import ConcurrencyConflict, ConfigurationError, NotFoundError
from ..validation import ValidationError, ConflictError
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)

VALID_KINDS = {"TRACKING", "MANIFEST"}
MAX_PREFIX_LENGTH = 10

# Provisioning defaults only; issuance never falls back to these.
DEFAULT_COUNTERS = {
    "TRACKING": ("GT", 100001),
    "MANIFEST": ("MAN", 1),
}


def validate_kind(kind: str) -> str:
    if kind not in VALID_KINDS:
        raise ValidationError(f"Invalid sequence kind '{kind}'. Must be one of: {', '.join(sorted(VALID_KINDS))}")
    return kind


def _normalize_prefix(prefix) -> str:
    if prefix is None:
        return ""
    if not isinstance(prefix, str):
        raise ValidationError("prefix must be a string")
    prefix = prefix.strip()
    if len(prefix) > MAX_PREFIX_LENGTH:
        raise ValidationError(f"prefix exceeds max length {MAX_PREFIX_LENGTH}")
    if prefix and prefix[-1].isdigit():
        # "GT1" + 5 would read as "GT15", colliding with "GT" + 15
        raise ValidationError("prefix must not end with a digit")
    return prefix


def _ensure_prefix_free(tenant_key: str, kind: str, prefix: str) -> None:
    """Tracking numbers are globally unique, so two tenants may not share a prefix."""
    clash = (
        db.session.query(SequenceCounter.id)
        .filter(
            SequenceCounter.kind == kind,
            SequenceCounter.prefix == prefix,
            SequenceCounter.tenant_key != tenant_key,
        )
        .first()
    )
    if clash:
        raise ConflictError(f"Prefix '{prefix}' is already used by another tenant for {kind}")


def _increment(tenant_key: str, kind: str) -> int:
    stmt = (
        update(SequenceCounter)
        .where(
            SequenceCounter.tenant_key == tenant_key,
            SequenceCounter.kind == kind,
        )
        .values(next_value=SequenceCounter.next_value + 1)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def _increment_and_read(tenant_key: str, kind: str):
    # A failed attempt rolls back to the savepoint only
    with db.session.begin_nested():
        if not _increment(tenant_key, kind):
            return None
        return (
            db.session.query(SequenceCounter.prefix, SequenceCounter.next_value)
            .filter_by(tenant_key=tenant_key, kind=kind)
            .one()
        )


def issue_next(tenant_key: str, kind: str = "TRACKING") -> str:
    """
    Issue the next value of the (tenant_key, kind) counter as "{prefix}{value}".

    Runs inside the caller's transaction and does not commit. Each attempt is
    wrapped in a savepoint so a failed UPDATE can be retried in place without
    poisoning the caller's transaction.

    Raises:
        ConfigurationError: no counter has been provisioned for the tenant
        ConcurrencyConflict: the counter stayed locked after the in-place retry,
            or the connection was lost; the caller should roll back and retry
            its whole unit with backoff
    """
    validate_kind(kind)
    if not tenant_key:
        raise ConfigurationError("tenant_key is required for sequence issuance")

    attempts = max(1, int(current_app.config.get("SEQUENCE_RETRY_ATTEMPTS", 2)))
    backoff = float(current_app.config.get("SEQUENCE_RETRY_BACKOFF", 0.05))

    row = None
    try:
        for attempt in range(attempts):
            try:
                row = _increment_and_read(tenant_key, kind)
                break
            except OperationalError as exc:
                if exc.connection_invalidated or attempt >= attempts - 1:
                    raise
                logger.warning("Sequence %s/%s busy, retrying (%s)", tenant_key, kind, exc.orig)
                time.sleep(backoff * (2 ** attempt))
    except SQLAlchemyError as exc:
        logger.warning("Sequence %s/%s unavailable: %s", tenant_key, kind, exc)
        raise ConcurrencyConflict(
            f"Could not lock {kind} sequence for tenant '{tenant_key}'",
            tenant_key=tenant_key,
            kind=kind,
        ) from exc

    if row is None:
        raise ConfigurationError(
            f"No {kind} sequence provisioned for tenant '{tenant_key}'",
            tenant_key=tenant_key,
            kind=kind,
        )

    prefix, next_value = row
    issued = f"{prefix}{next_value - 1}"
    logger.info("Issued %s %s for tenant %s", kind, issued, tenant_key)
    return issued


def get_counter(tenant_key: str, kind: str) -> SequenceCounter:
    validate_kind(kind)
    counter = db.session.query(SequenceCounter).filter_by(tenant_key=tenant_key, kind=kind).first()
    if not counter:
        raise NotFoundError(f"No {kind} sequence for tenant '{tenant_key}'")
    return counter


def list_counters(tenant_key: str | None = None) -> list[SequenceCounter]:
    query = db.session.query(SequenceCounter)
    if tenant_key:
        query = query.filter_by(tenant_key=tenant_key)
    return query.order_by(SequenceCounter.tenant_key, SequenceCounter.kind).all()


def provision_counter(
    tenant_key: str,
    kind: str,
    *,
    prefix: str | None = None,
    start_value: int | None = None,
) -> SequenceCounter:
    """
    Create the counter row for a tenant. Refuses to overwrite an existing one.

    Omitted prefix/start_value take the DEFAULT_COUNTERS values for the kind.
    """
    validate_kind(kind)
    tenant_key = (tenant_key or "").strip()
    if not tenant_key:
        raise ValidationError("tenant_key is required")
    if len(tenant_key) > 64:
        raise ValidationError("tenant_key exceeds max length 64")

    default_prefix, default_start = DEFAULT_COUNTERS[kind]
    prefix = _normalize_prefix(default_prefix if prefix is None else prefix)
    start_value = default_start if start_value is None else start_value
    if isinstance(start_value, bool) or not isinstance(start_value, int) or start_value < 1:
        raise ValidationError("start_value must be an integer >= 1")

    existing = db.session.query(SequenceCounter).filter_by(tenant_key=tenant_key, kind=kind).first()
    if existing:
        raise ConflictError(f"{kind} sequence for tenant '{tenant_key}' already exists")
    _ensure_prefix_free(tenant_key, kind, prefix)

    counter = SequenceCounter(tenant_key=tenant_key, kind=kind, prefix=prefix, next_value=start_value)
    db.session.add(counter)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{kind} sequence for tenant '{tenant_key}' already exists")

    logger.info("Provisioned %s sequence for tenant %s: %s%d", kind, tenant_key, prefix, start_value)
    return counter


def update_counter(
    tenant_key: str,
    kind: str,
    *,
    prefix: str | None = None,
    next_value: int | None = None,
) -> SequenceCounter:
    """
    Change a counter's prefix and/or move its next value forward.

    next_value may never move backwards; that would re-issue numbers that
    are already printed on labels.
    """
    validate_kind(kind)
    counter = lock_for_update(
        db.session.query(SequenceCounter).filter_by(tenant_key=tenant_key, kind=kind)
    ).first()
    if not counter:
        raise NotFoundError(f"No {kind} sequence for tenant '{tenant_key}'")

    if prefix is not None:
        prefix = _normalize_prefix(prefix)
        if prefix != counter.prefix:
            _ensure_prefix_free(tenant_key, kind, prefix)
            counter.prefix = prefix

    if next_value is not None:
        if isinstance(next_value, bool) or not isinstance(next_value, int):
            raise ValidationError("next_value must be an integer")
        if next_value < counter.next_value:
            raise ValidationError(
                f"next_value cannot move backwards (current {counter.next_value}, requested {next_value})"
            )
        counter.next_value = next_value

    db.session.commit()
    logger.info("Updated %s sequence for tenant %s: %s%d", kind, tenant_key, counter.prefix, counter.next_value)
    return counter
