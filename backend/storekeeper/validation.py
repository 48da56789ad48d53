# Overview: Payload validation for engine operations, driven by SQLAlchemy column metadata.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import Boolean, DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .enums import coerce_enum
from .errors import ValidationError
from .time_utils import parse_iso_datetime


# 9,999,999.99 in minor units; keeps totals (price x quantity) inside a 32-bit column
MAX_AMOUNT_CENTS = 999_999_999


def _int_value(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{key} must be an integer")


def _bool_value(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{key} must be true or false")


def _int_list(key: str, value: Any) -> list[int]:
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list of ids")
    return [_int_value(key, item) for item in value]


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What one operation may accept for one model.

    - writable_fields: model columns the caller may set
    - required_on_create: keys that must be present and non-null on create
    - allow_null_fields: non-nullable columns that may still be sent as null
    - extra_fields: keys that are not columns (id lists, flags), with their coercer
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    allow_null_fields: set[str] | None = None
    extra_fields: dict[str, Callable[[str, Any], Any]] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {column.key: column for column in model.__mapper__.columns}


def _coerce_integer(key: str, value: Any) -> int:
    # Money and quantities arrive as JSON numbers or digit strings; 12.5 and 1e3 are refused
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Enum before String: SQLAlchemy's Enum is a String subtype
    if isinstance(coltype, Enum) and coltype.enum_class is not None:
        return coerce_enum(coltype.enum_class, value, col.key)

    if isinstance(coltype, Integer):
        return _coerce_integer(col.key, value)

    if isinstance(coltype, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{col.key} must be true or false")
        return value

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        parsed = parse_iso_datetime(value) if isinstance(value, str) else None
        if parsed is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return parsed

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
    Check a payload against ``policy`` and the model's columns and return the
    cleaned values. Nothing has been written when this raises.

    partial=False enforces ``required_on_create``; partial=True only checks
    the keys that were sent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(key for key in (policy.required_on_create or set()) if payload.get(key) is None)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

    columns = _columns_by_key(model)
    for key in payload:
        if key in policy.extra_fields:
            continue
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in columns:
            raise ValidationError(f"Unknown field: {key}")

    cleaned: dict = {}
    for key, raw in payload.items():
        if key in policy.extra_fields:
            cleaned[key] = None if raw is None else policy.extra_fields[key](key, raw)
            continue

        col = columns[key]
        if raw is None:
            if not col.nullable and key not in (policy.allow_null_fields or set()):
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
            continue

        value = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and isinstance(value, str):
            if value == "" and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            if isinstance(col.type, String) and col.type.length and len(value) > col.type.length:
                raise ValidationError(f"{key} exceeds max length {col.type.length}")

        cleaned[key] = value

    return cleaned


def enforce_amount_rules(patch: dict) -> None:
    """Every *_cents value must be within 0..MAX_AMOUNT_CENTS."""
    for key, value in patch.items():
        if not key.endswith("_cents") or value is None:
            continue
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_positive(patch: dict, *keys: str) -> None:
    for key in keys:
        if key in patch and patch[key] is not None and patch[key] <= 0:
            raise ValidationError(f"{key} must be > 0")


def actor(payload: dict) -> tuple[dict, int, int]:
    """Split the acting branch/user out of a payload: (rest, branch_id, user_id)."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    rest = dict(payload)
    missing = [k for k in ("branch_id", "user_id") if rest.get(k) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"missing": missing})
    branch_id = _int_value("branch_id", rest.pop("branch_id"))
    user_id = _int_value("user_id", rest.pop("user_id"))
    return rest, branch_id, user_id


def acting_user(payload: dict) -> tuple[dict, int]:
    """Like actor(), for operations scoped by the document rather than the branch."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    rest = dict(payload)
    if rest.get("user_id") is None:
        raise ValidationError("Missing required fields: user_id", details={"missing": ["user_id"]})
    rest.pop("branch_id", None)
    return rest, _int_value("user_id", rest.pop("user_id"))


def document_id(payload: dict, *keys: str) -> int:
    """Pop the first of ``keys`` present in the payload, as an int id."""
    for key in keys:
        if payload.get(key) is not None:
            return _int_value(key, payload.pop(key))
    raise ValidationError(f"Missing required fields: {keys[0]}", details={"missing": [keys[0]]})


# --- policies -----------------------------------------------------------------

CART_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "selling_price_cents", "type", "status", "customer_id", "number", "order_id"},
    required_on_create={"product_id", "quantity", "selling_price_cents", "type", "status", "number"},
)

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={"type", "number", "customer_id", "reference"},
    required_on_create={"sales"},
    extra_fields={"sales": _int_list},
)

PURCHASE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "quantity",
        "buying_price_cents",
        "selling_price_cents",
        "total_amount_cents",
        "paid_amount_cents",
        "supplier_id",
        "reorder_level",
        "reference",
        "description",
        "date",
    },
    required_on_create={"product_id", "quantity", "buying_price_cents", "selling_price_cents"},
)
PURCHASE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "supplier_id",
        "reference",
        "description",
        "date",
        "buying_price_cents",
        "selling_price_cents",
        "reorder_level",
        "visible",
    },
    extra_fields={"id": _int_value},
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_id", "stock", "buying_price_cents", "selling_price_cents", "reorder_level"},
    required_on_create={"name"},
)
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category_id", "stock", "buying_price_cents", "selling_price_cents", "reorder_level", "visible"},
    extra_fields={"id": _int_value, "old_stock": _int_value, "restore": _bool_value},
)

SETTLEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"total_amount_cents", "fee_cents", "account_id", "reference", "description"},
    required_on_create={"total_amount_cents"},
)

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"type", "total_amount_cents", "fee_cents", "account_to_impact_id", "reference", "description", "date"},
    required_on_create={"type", "total_amount_cents"},
)

SAVE_SALE_POLICY = ModelValidationPolicy(
    writable_fields={"number", "customer_id", "reference"},
    required_on_create={"sales"},
    extra_fields={"sales": _int_list},
)
