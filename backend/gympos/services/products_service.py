# Overview: Service-layer operations for products; gym-scoped catalog and line-item resolution.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..models import Product
from gympos.money import ZERO
from gympos.pagination import apply_sort, paginate
from gympos.validation import (
    MAX_AMOUNT,
    ConflictError,
    ModelValidationPolicy,
    enforce_rules_product,
    validate_payload,
)


class ProductError(Exception):
    code = "PRODUCT_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFound(ProductError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404


class InvalidLineItems(ProductError):
    """Requested line items do not all resolve to priced products of the gym."""
    code = "INVALID_LINE_ITEMS"


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "price", "duration", "capacity", "is_active"},
    required_on_create={"name", "category", "price"},
)

PRODUCT_SORT_FIELDS = {"created_at", "name", "price", "category"}

# Largest quantity accepted on one sale line
MAX_LINE_QUANTITY = 10000


def create_product(gym_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    if db.session.query(Product).filter_by(gym_id=gym_id, name=patch["name"]).first():
        raise ConflictError("Product name already exists")

    product = Product(gym_id=gym_id, **patch)
    db.session.add(product)
    db.session.commit()
    return product


def get_product(gym_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, gym_id=gym_id).first()
    if not product:
        raise ProductNotFound("Product not found")
    return product


def update_product(gym_id: int, product_id: int, payload: dict) -> Product:
    product = get_product(gym_id, product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    new_name = patch.get("name")
    if new_name and new_name != product.name:
        clash = (
            db.session.query(Product)
            .filter(Product.gym_id == gym_id, Product.name == new_name, Product.id != product.id)
            .first()
        )
        if clash:
            raise ConflictError("Product name already exists")

    for key, value in patch.items():
        setattr(product, key, value)
    db.session.commit()
    return product


def deactivate_product(gym_id: int, product_id: int) -> Product:
    """Products referenced by sales are kept; deactivation hides them from the POS."""
    product = get_product(gym_id, product_id)
    product.is_active = False
    db.session.commit()
    return product


def list_products(
    gym_id: int,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
    min_price: Decimal | None = None,
    max_price: Decimal | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    q = db.session.query(Product).filter(Product.gym_id == gym_id)
    if search:
        pattern = f"%{search}%"
        q = q.filter(db.or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if category:
        q = q.filter(Product.category == category)
    if is_active is not None:
        q = q.filter(Product.is_active == is_active)
    if min_price is not None:
        q = q.filter(Product.price >= min_price)
    if max_price is not None:
        q = q.filter(Product.price <= max_price)

    q = apply_sort(q, Product, sort_by, sort_order, PRODUCT_SORT_FIELDS, "created_at")
    return paginate(q, page, limit)


# =============================================================================
# LINE ITEM RESOLUTION (settlement)
# =============================================================================

@dataclass
class ResolvedLine:
    product: Product
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.product.price * self.quantity


def find_products_by_ids(gym_id: int, product_ids) -> list[Product]:
    """Active products of this gym among product_ids; foreign ids simply don't match."""
    ids = list({pid for pid in product_ids})
    if not ids:
        return []
    return (
        db.session.query(Product)
        .filter(Product.gym_id == gym_id, Product.id.in_(ids), Product.is_active.is_(True))
        .all()
    )


def _parse_line(raw, index: int) -> tuple[int, int]:
    if not isinstance(raw, dict):
        raise InvalidLineItems(f"items[{index}] must be an object")

    product_id = raw.get("product_id")
    quantity = raw.get("quantity")

    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise InvalidLineItems(f"items[{index}].product_id must be an integer")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidLineItems(f"items[{index}].quantity must be a positive integer")
    if quantity > MAX_LINE_QUANTITY:
        raise InvalidLineItems(
            f"items[{index}].quantity cannot exceed {MAX_LINE_QUANTITY}",
            details={"max_quantity": MAX_LINE_QUANTITY},
        )
    return product_id, quantity


def resolve_line_items(gym_id: int, items) -> tuple[list[ResolvedLine], Decimal]:
    """
    Resolve requested {product_id, quantity} lines against the gym catalog.

    Returns (lines in request order, subtotal).

    Raises InvalidLineItems when the list is empty, malformed, or when the
    number of resolved products differs from the number of distinct
    requested ids.
    """
    if not isinstance(items, list) or not items:
        raise InvalidLineItems("items must be a non-empty list")

    requested = [_parse_line(raw, i) for i, raw in enumerate(items)]
    distinct_ids = {product_id for product_id, _ in requested}

    products = {p.id: p for p in find_products_by_ids(gym_id, distinct_ids)}
    if len(products) != len(distinct_ids):
        missing = sorted(distinct_ids - set(products))
        raise InvalidLineItems(
            "Some products don't exist; refresh the catalog and try again",
            details={"missing_product_ids": missing},
        )

    unpriced = sorted(pid for pid, p in products.items() if p.price is None)
    if unpriced:
        raise InvalidLineItems(
            "Some products have no price",
            details={"unpriced_product_ids": unpriced},
        )

    lines = [ResolvedLine(product=products[pid], quantity=qty) for pid, qty in requested]
    subtotal = sum((line.subtotal for line in lines), ZERO)
    if subtotal > MAX_AMOUNT:
        raise InvalidLineItems(
            "Sale subtotal is too large",
            details={"max_subtotal": str(MAX_AMOUNT)},
        )
    return lines, subtotal
