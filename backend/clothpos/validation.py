from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from clothpos.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime, JSON
from sqlalchemy.orm import DeclarativeMeta


# Upper bound for any single money or quantity value. Keeps NUMERIC columns
# (precision 14) from overflowing and rejects obviously mistyped input.
MAX_AMOUNT = Decimal("9999999999")

ENTRY_TYPES = ("INITIAL_STOCK", "RESTOCK", "ADJUSTMENT", "RETURN")

# Decimal places each kind of value may carry (matches the column scales)
QUANTITY_PLACES = 3
MONEY_PLACES = 4
AMOUNT_PLACES = 7


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    - extra_fields: non-column keys a route accepts and hands to the service
      untouched (e.g. nested combo components)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def to_decimal(value: Any, field: str, places: int | None = None) -> Decimal:
    """
    Coerce an API or service input to Decimal.

    Floats go through str() so 2.5 stays 2.5 and not its binary expansion.
    Booleans, NaN and infinities are rejected. With places set, values
    needing more decimal places than the column stores are rejected instead
    of being rounded on write.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, float)):
        dec = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            dec = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if abs(dec) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    if places is not None:
        require_places(dec, places, field)
    return dec


def require_places(value: Decimal, places: int, field: str) -> Decimal:
    if value != value.quantize(Decimal(1).scaleb(-places)):
        raise ValidationError(f"{field} allows at most {places} decimal places")
    return value


def require_max_length(value: Any, length: int, field: str) -> str | None:
    """Strip free text; blank becomes None and over-length text is rejected."""
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > length:
        raise ValidationError(f"{field} exceeds max length {length}")
    return text or None


def require_non_negative(value: Decimal, field: str) -> Decimal:
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    return value


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not stripped.lstrip("-").isdigit():
                raise ValidationError(f"{col.key} must be an integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    # Money and quantities
    if isinstance(coltype, Numeric):
        return to_decimal(value, col.key, places=coltype.scale)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

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
    - a policy allowlist (writable_fields, extra_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only allowed fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    extra = policy.extra_fields or set()

    for k in payload.keys():
        if k not in policy.writable_fields and k not in extra:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols and k not in extra:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            patch[k] = raw
            continue

        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("buying_price", "selling_price", "min_stock_level", "total_meters", "meters_per_unit"):
        if field in patch and patch[field] is not None:
            require_non_negative(patch[field], field)

    if "warranty_months" in patch and patch["warranty_months"] is not None:
        if patch["warranty_months"] < 0:
            raise ValidationError("warranty_months must be >= 0")


def enforce_rules_stock_entry(entry_type: str, quantity: Decimal, buying_price: Decimal) -> None:
    """Ledger boundary checks; the mutator only rejects negative stock."""
    if entry_type not in ENTRY_TYPES:
        raise ValidationError(f"entry_type must be one of {', '.join(ENTRY_TYPES)}")

    if entry_type == "INITIAL_STOCK" and quantity < 0:
        raise ValidationError("quantity must be >= 0 for INITIAL_STOCK")
    if entry_type in ("RESTOCK", "RETURN") and quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {entry_type}")
    if entry_type == "ADJUSTMENT" and quantity == 0:
        raise ValidationError("quantity must be non-zero for ADJUSTMENT")
    require_places(quantity, QUANTITY_PLACES, "quantity")

    require_non_negative(buying_price, "buying_price")
    require_places(buying_price, MONEY_PLACES, "buying_price")


def enforce_rules_refund_request(items: Any, method: Any, *, require_method: bool = True) -> list[dict]:
    """
    Normalize a refund request body into [{product_id, quantity}].

    Rejects empty requests and zero total quantity before any totals are computed.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    if require_method and (not method or not str(method).strip()):
        raise ValidationError("method is required")

    normalized: dict[int, Decimal] = {}
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        product_id = raw.get("product_id")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ValidationError("product_id must be an integer")
        qty = to_decimal(raw.get("quantity"), "quantity", places=QUANTITY_PLACES)
        if qty < 0:
            raise ValidationError("quantity must be >= 0")
        normalized[product_id] = normalized.get(product_id, Decimal("0")) + qty

    if sum(normalized.values(), Decimal("0")) == 0:
        raise ValidationError("Select at least one item to refund")

    return [
        {"product_id": pid, "quantity": qty}
        for pid, qty in normalized.items()
        if qty > 0
    ]
