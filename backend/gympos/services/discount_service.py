# Overview: Service-layer operations for discounts; management and settlement-time application.

"""
Discount Service

Discounts are gym-scoped and never deleted (deactivated instead).

Applying a discount to a subtotal:
- percentage: subtotal * value / 100, capped at max_discount when set
- fixed:      min(value, subtotal), so a total never goes below zero
- min_purchase (when set) must be met by the subtotal
- used_count is incremented atomically inside the settlement transaction
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..models import Discount
from ..models.discounts import DISCOUNT_PERCENTAGE
from gympos.money import CENT, ZERO
from gympos.pagination import apply_sort, paginate
from gympos.time_utils import utcnow
from gympos.validation import (
    ConflictError,
    ModelValidationPolicy,
    enforce_rules_discount,
    validate_payload,
)


class DiscountError(Exception):
    code = "DISCOUNT_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DiscountNotFound(DiscountError):
    code = "DISCOUNT_NOT_FOUND"
    status_code = 404


class DiscountExpired(DiscountError):
    code = "DISCOUNT_EXPIRED"


class DiscountUsageLimitReached(DiscountError):
    code = "DISCOUNT_USAGE_LIMIT_REACHED"


class DiscountMinimumNotMet(DiscountError):
    code = "DISCOUNT_MINIMUM_NOT_MET"


DISCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "discount_type", "value", "min_purchase", "max_discount",
        "valid_from", "valid_until", "usage_limit", "is_active",
    },
    required_on_create={"code", "name", "discount_type", "value"},
    aliases={"type": "discount_type"},
)

DISCOUNT_SORT_FIELDS = {"created_at", "code", "name", "value", "used_count"}


# =============================================================================
# MANAGEMENT
# =============================================================================

def _code_taken(gym_id: int, code: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(Discount).filter(Discount.gym_id == gym_id, Discount.code == code)
    if exclude_id is not None:
        q = q.filter(Discount.id != exclude_id)
    return db.session.query(q.exists()).scalar()


def create_discount(gym_id: int, payload: dict) -> Discount:
    patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=False)
    enforce_rules_discount(patch)

    if _code_taken(gym_id, patch["code"]):
        raise ConflictError("Discount code already exists")

    discount = Discount(gym_id=gym_id, used_count=0, **patch)
    db.session.add(discount)
    db.session.commit()
    return discount


def get_discount(gym_id: int, discount_id: int) -> Discount:
    discount = db.session.query(Discount).filter_by(id=discount_id, gym_id=gym_id).first()
    if not discount:
        raise DiscountNotFound("Discount not found", details={"discount_id": discount_id})
    return discount


def update_discount(gym_id: int, discount_id: int, payload: dict) -> Discount:
    discount = get_discount(gym_id, discount_id)
    patch = validate_payload(model=Discount, payload=payload, policy=DISCOUNT_POLICY, partial=True)

    current = {key: getattr(discount, key) for key in DISCOUNT_POLICY.writable_fields}
    enforce_rules_discount(patch, current=current)

    new_code = patch.get("code")
    if new_code and new_code != discount.code and _code_taken(gym_id, new_code, exclude_id=discount.id):
        raise ConflictError("Discount code already exists")

    for key, value in patch.items():
        setattr(discount, key, value)
    db.session.commit()
    return discount


def deactivate_discount(gym_id: int, discount_id: int) -> Discount:
    discount = get_discount(gym_id, discount_id)
    discount.is_active = False
    db.session.commit()
    return discount


def list_discounts(
    gym_id: int,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    discount_type: str | None = None,
    is_active: bool | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    q = db.session.query(Discount).filter(Discount.gym_id == gym_id)
    if search:
        pattern = f"%{search}%"
        q = q.filter(db.or_(Discount.code.ilike(pattern), Discount.name.ilike(pattern)))
    if discount_type:
        q = q.filter(Discount.discount_type == discount_type)
    if is_active is not None:
        q = q.filter(Discount.is_active == is_active)

    q = apply_sort(q, Discount, sort_by, sort_order, DISCOUNT_SORT_FIELDS, "created_at")
    return paginate(q, page, limit)


# =============================================================================
# SETTLEMENT
# =============================================================================

def find_active_discount(gym_id: int, discount_id: int, now: datetime) -> Discount | None:
    """Active discount of this gym whose validity window contains now, else None."""
    return (
        db.session.query(Discount)
        .filter(
            Discount.id == discount_id,
            Discount.gym_id == gym_id,
            Discount.is_active.is_(True),
            db.or_(Discount.valid_from.is_(None), Discount.valid_from <= now),
            db.or_(Discount.valid_until.is_(None), Discount.valid_until >= now),
        )
        .first()
    )


def resolve_discount(gym_id: int, discount_id: int, now: datetime | None = None) -> Discount:
    """
    Load a discount usable for a sale right now.

    Raises:
        DiscountNotFound: unknown id, another gym's discount, or deactivated
        DiscountExpired: outside valid_from/valid_until
        DiscountUsageLimitReached: used_count reached usage_limit
    """
    now = now or utcnow()
    discount = find_active_discount(gym_id, discount_id, now)

    if discount is None:
        exists = (
            db.session.query(Discount)
            .filter_by(id=discount_id, gym_id=gym_id, is_active=True)
            .first()
        )
        if exists is None:
            raise DiscountNotFound("Discount not found or not valid", details={"discount_id": discount_id})
        raise DiscountExpired(
            "Discount is not valid at this time",
            details={
                "discount_id": discount_id,
                "valid_from": exists.valid_from.isoformat() if exists.valid_from else None,
                "valid_until": exists.valid_until.isoformat() if exists.valid_until else None,
            },
        )

    if discount.usage_limit is not None and discount.used_count >= discount.usage_limit:
        raise DiscountUsageLimitReached(
            "Discount usage limit reached",
            details={"discount_id": discount.id, "usage_limit": discount.usage_limit},
        )

    return discount


def compute_discount_amount(discount: Discount, subtotal: Decimal) -> Decimal:
    """
    Discount amount for a subtotal; always within [0, subtotal].

    Raises DiscountMinimumNotMet when subtotal < min_purchase.
    """
    if discount.min_purchase is not None and subtotal < discount.min_purchase:
        raise DiscountMinimumNotMet(
            f"Minimum amount of {discount.min_purchase} required for this discount",
            details={"min_purchase": str(discount.min_purchase), "subtotal": str(subtotal)},
        )

    if discount.discount_type == DISCOUNT_PERCENTAGE:
        amount = (subtotal * discount.value / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)
        if discount.max_discount is not None and amount > discount.max_discount:
            amount = discount.max_discount
    else:
        amount = discount.value

    return max(ZERO, min(amount, subtotal))


def increment_discount_usage(session, discount_id: int) -> None:
    """
    Atomic used_count + 1, guarded by usage_limit; the caller owns the transaction.

    Raises DiscountUsageLimitReached when a concurrent sale consumed the
    last use after this one resolved the discount.
    """
    updated = session.query(Discount).filter(
        Discount.id == discount_id,
        db.or_(Discount.usage_limit.is_(None), Discount.used_count < Discount.usage_limit),
    ).update(
        {
            Discount.used_count: Discount.used_count + 1,
            Discount.version_id: Discount.version_id + 1,
        },
        synchronize_session=False,
    )
    if updated != 1:
        raise DiscountUsageLimitReached(
            "Discount usage limit reached",
            details={"discount_id": discount_id},
        )
