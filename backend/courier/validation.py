from __future__ import annotations
from datetime import date
from decimal import Decimal, InvalidOperation

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from courier.errors import CourierError, InvalidAmountError
from courier.time_utils import parse_iso_date


# Largest amount any single ledger row may carry (currency has no minor unit).
MAX_AMOUNT = Decimal("999999999999")


class ValidationError(ValueError):
    """400-level input problem."""

    http_status = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "code": "ValidationError"}


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate payslip id)."""

    http_status = 409

    def to_dict(self) -> dict:
        return {"error": str(self), "code": "ConflictError"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def parse_amount(value: Any, field: str = "amount", *, allow_zero: bool = True) -> Decimal:
    """
    Coerce a JSON/form value into a non-negative Decimal.

    Accepts ints, Decimals, floats and plain numeric strings. Rejects
    booleans, scientific notation, NaN/Infinity, negatives and values above
    MAX_AMOUNT with InvalidAmountError.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(f"{field} must be a number")

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidAmountError(f"{field} must be a number")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise InvalidAmountError(f"{field} must be a plain number (scientific notation not allowed)")
        raw = stripped
    elif isinstance(value, float):
        raw = repr(value)
    elif isinstance(value, (int, Decimal)):
        raw = value
    else:
        raise InvalidAmountError(f"{field} must be a number")

    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"{field} must be a number")

    if not amount.is_finite():
        raise InvalidAmountError(f"{field} must be a finite number")
    if amount < 0:
        raise InvalidAmountError(f"{field} must be >= 0", field=field, value=str(amount))
    if not allow_zero and amount == 0:
        raise InvalidAmountError(f"{field} must be > 0", field=field)
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"{field} cannot exceed {MAX_AMOUNT}", field=field)
    return amount


def parse_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def parse_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{field} must be an ISO-8601 date (YYYY-MM-DD)")


def require_fields(payload: dict, *fields: str) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Money columns
    if isinstance(coltype, Numeric):
        return parse_amount(value, col.key)

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes", "on"):
            return True
        if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", "off", ""):
            return False
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, Date):
        return parse_date(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # Treat blank strings on optional columns as null
        if isinstance(raw, str) and raw.strip() == "" and col.nullable:
            raw = None

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# Expected failures the routes translate into JSON error responses
DOMAIN_ERRORS = (CourierError, ValidationError, ConflictError)
