# Overview: Flask API routes for discounts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_GYM_OWNER
from ..pagination import parse_page_args
from ..services import discount_service
from .common import HANDLED_ERRORS, current_gym_id, internal_error, json_error, page_payload, parse_bool_arg

discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.get("")
@require_auth
def list_discounts_route():
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        page, limit = parse_page_args(request.args)
        result = discount_service.list_discounts(
            gym_id,
            page=page,
            limit=limit,
            search=request.args.get("search"),
            discount_type=request.args.get("type"),
            is_active=parse_bool_arg(request.args, "is_active"),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
        )
        return jsonify(page_payload(result)), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to list discounts")


@discounts_bp.post("")
@require_auth
@require_role(ROLE_GYM_OWNER)
def create_discount_route():
    payload = request.get_json(silent=True) or {}
    try:
        gym_id = current_gym_id(payload.pop("gym_id", None))
        discount = discount_service.create_discount(gym_id, payload)
        return jsonify({"discount": discount.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to create discount")


@discounts_bp.get("/<int:discount_id>")
@require_auth
def get_discount_route(discount_id: int):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        discount = discount_service.get_discount(gym_id, discount_id)
        return jsonify({"discount": discount.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load discount")


@discounts_bp.put("/<int:discount_id>")
@require_auth
@require_role(ROLE_GYM_OWNER)
def update_discount_route(discount_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        gym_id = current_gym_id(payload.pop("gym_id", None))
        discount = discount_service.update_discount(gym_id, discount_id, payload)
        return jsonify({"discount": discount.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to update discount")


@discounts_bp.delete("/<int:discount_id>")
@require_auth
@require_role(ROLE_GYM_OWNER)
def deactivate_discount_route(discount_id: int):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        discount = discount_service.deactivate_discount(gym_id, discount_id)
        return jsonify({"discount": discount.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to deactivate discount")
