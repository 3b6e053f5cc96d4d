# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

MULTI-TENANT: All product operations are scoped to the caller's gym.
Read operations are open to any authenticated user of the gym; writes
require the gym_owner role.
"""
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_GYM_OWNER
from ..pagination import parse_page_args
from ..services import products_service
from ..validation import ValidationError
from .common import HANDLED_ERRORS, current_gym_id, internal_error, json_error, page_payload, parse_bool_arg

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _price_arg(key: str):
    raw = request.args.get(key)
    if raw is None or raw == "":
        return None
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{key} must be a number")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products of the gym.

    Query params: page, limit, search, category, is_active, min_price,
    max_price, sort_by, sort_order
    """
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        page, limit = parse_page_args(request.args)
        result = products_service.list_products(
            gym_id,
            page=page,
            limit=limit,
            search=request.args.get("search"),
            category=request.args.get("category"),
            is_active=parse_bool_arg(request.args, "is_active"),
            min_price=_price_arg("min_price"),
            max_price=_price_arg("max_price"),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
        )
        return jsonify(page_payload(result)), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to list products")


@products_bp.post("")
@require_auth
@require_role(ROLE_GYM_OWNER)
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        gym_id = current_gym_id(payload.pop("gym_id", None))
        product = products_service.create_product(gym_id, payload)
        return jsonify({"product": product.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        product = products_service.get_product(gym_id, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_GYM_OWNER)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        gym_id = current_gym_id(payload.pop("gym_id", None))
        product = products_service.update_product(gym_id, product_id, payload)
        return jsonify({"product": product.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_GYM_OWNER)
def deactivate_product_route(product_id: int):
    """Soft delete: the product is kept for sales history."""
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        product = products_service.deactivate_product(gym_id, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to deactivate product")
