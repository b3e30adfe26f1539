from __future__ import annotations
from datetime import datetime
from bufet.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 EUR (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level missing entity (product, user, batch)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate EAN)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_columns: request-only fields that have no model column (typed like one)
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    extra_columns: tuple[Column, ...] = ()


def _columns_by_key(models: Iterable[DeclarativeMeta], extra: Iterable[Column]) -> dict[str, Any]:
    cols: dict[str, Any] = {}
    # later models win on shared names (e.g. price_cents on both Product and StockBatch)
    for model in models:
        cols.update({c.key: c for c in model.__mapper__.columns})
    for col in extra:
        cols[col.key] = col
    return cols


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans: only real JSON booleans count as true
    if isinstance(coltype, Boolean):
        return value is True

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except Exception:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta | tuple[DeclarativeMeta, ...],
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

    model may be a tuple when one request feeds several tables
    (add-batch carries Product and StockBatch fields).

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    models = model if isinstance(model, tuple) else (model,)
    cols = _columns_by_key(models, policy.extra_columns)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling (request-only optional fields are nullable)
        if raw is None:
            if not col.nullable and k in policy.required_on_create:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for required text fields
        if isinstance(col.type, (String, Text)) and k in policy.required_on_create:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_positive_int(name: str, value: Any) -> int:
    """Service-level guard; services are callable without going through validate_payload."""
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return value


def require_non_negative_int(name: str, value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def _check_price(name: str, price: Any) -> None:
    if not isinstance(price, int):
        raise ValidationError(f"{name} must be an integer")
    if price <= 0:
        raise ValidationError(f"{name} must be > 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f} EUR)")


def enforce_rules_purchase(patch: dict) -> None:
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")


def enforce_rules_add_batch(patch: dict) -> None:
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    _check_price("price_cents", patch.get("price_cents"))
    if not patch.get("ean"):
        raise ValidationError("ean is required")


def enforce_rules_reconcile(patch: dict) -> None:
    if patch.get("actual_quantity") is None or patch["actual_quantity"] < 0:
        raise ValidationError("actual_quantity must be >= 0")


def enforce_rules_deposit(patch: dict) -> None:
    amount = patch.get("amount_cents")
    if amount is None or amount <= 0:
        raise ValidationError("amount_cents must be > 0")
    contribution = patch.get("contribution_cents") or 0
    if contribution < 0:
        raise ValidationError("contribution_cents must be >= 0")
    if contribution > amount:
        raise ValidationError("contribution_cents cannot exceed amount_cents")


def enforce_rules_product_update(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be blank")
    if "ean" in patch and patch["ean"] is not None and patch["ean"] == "":
        raise ValidationError("ean cannot be blank")
    if "price_cents" in patch and patch["price_cents"] is not None:
        _check_price("price_cents", patch["price_cents"])
    if patch.get("sale_price_cents") is not None:
        _check_price("sale_price_cents", patch["sale_price_cents"])
        if patch.get("sale_expires_at") is None:
            raise ValidationError("sale_expires_at is required when sale_price_cents is set")
