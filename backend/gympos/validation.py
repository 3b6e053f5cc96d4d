# Overview: Request payload validation against model columns plus gym catalog rules.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from gympos.money import MoneyError, to_money
from gympos.time_utils import parse_iso_datetime


# Largest value NUMERIC(14, 2) can hold
MAX_AMOUNT = Decimal("999999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate discount code)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which request keys a model accepts.

    - writable_fields: columns a client may set; everything else is refused
    - required_on_create: columns a create payload must carry
    - aliases: request keys renamed onto column keys ("type" -> "discount_type")
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)
    aliases: dict[str, str] = field(default_factory=dict)


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    # int() would accept "1_000"; "12.5" and "1e3" are refused outright
    digits = text[1:] if text.startswith("-") else text
    if not digits.isdecimal():
        raise ValidationError(f"{key} must be a plain integer")
    return int(text)


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{key} must be true or false")


def _to_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = None
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")
    return parsed


def _to_money(key: str, value: Any) -> Decimal:
    try:
        return to_money(value)
    except MoneyError:
        raise ValidationError(f"{key} must be a decimal amount")


def _coerce(col, value: Any):
    """Convert a JSON value to the Python type of a column."""
    coltype = col.type
    if isinstance(coltype, Numeric):
        return _to_money(col.key, value)
    if isinstance(coltype, Integer):
        return _to_int(col.key, value)
    if isinstance(coltype, Boolean):
        return _to_bool(col.key, value)
    if isinstance(coltype, DateTime):
        return _to_datetime(col.key, value)
    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if not text and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{col.key} is longer than {coltype.length} characters")
        return text
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON body into a {column: value} patch for `model`.

    partial=False enforces required_on_create (POST); partial=True only
    validates the keys that are present (PUT/PATCH).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    payload = {policy.aliases.get(k, k): v for k, v in payload.items()}
    columns = {c.key: c for c in model.__mapper__.columns}

    refused = sorted(k for k in payload if k not in policy.writable_fields or k not in columns)
    if refused:
        raise ValidationError(f"Field not allowed: {', '.join(refused)}")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict = {}
    for key, raw in payload.items():
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce(col, raw)
    return patch


def _check_amount(patch: dict, key: str) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    from gympos.models.catalog import VALID_CATEGORIES

    _check_amount(patch, "price")

    if "category" in patch and patch["category"] not in VALID_CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(VALID_CATEGORIES)}")

    for key in ("duration", "capacity"):
        if patch.get(key) is not None and patch[key] <= 0:
            raise ValidationError(f"{key} must be > 0")


def enforce_rules_discount(patch: dict, current: dict | None = None) -> None:
    """
    Discount rules. current holds the stored values when patching so that
    cross-field checks (type vs value, window order) see the merged state.
    """
    from gympos.models.discounts import DISCOUNT_PERCENTAGE, VALID_DISCOUNT_TYPES

    merged = dict(current or {})
    merged.update(patch)

    if merged.get("discount_type") not in VALID_DISCOUNT_TYPES:
        raise ValidationError(f"type must be one of {', '.join(VALID_DISCOUNT_TYPES)}")

    for key in ("value", "min_purchase", "max_discount"):
        _check_amount(merged, key)

    if merged["discount_type"] == DISCOUNT_PERCENTAGE and merged.get("value") is not None:
        if merged["value"] > 100:
            raise ValidationError("percentage discount value cannot exceed 100")

    if merged.get("usage_limit") is not None and merged["usage_limit"] < 1:
        raise ValidationError("usage_limit must be >= 1")

    valid_from = merged.get("valid_from")
    valid_until = merged.get("valid_until")
    if valid_from is not None and valid_until is not None and valid_from > valid_until:
        raise ValidationError("valid_from must be before valid_until")
