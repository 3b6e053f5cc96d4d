# Overview: Flask API routes for POS transactions; parses input and returns JSON responses.

"""
POS API routes.

MULTI-TENANT: Every operation is scoped to the caller's gym (g.gym_id, set by
@require_auth). Super admins name the gym with gym_id.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_GYM_OWNER, ROLE_STAFF
from ..services import pos_service
from .common import (
    HANDLED_ERRORS,
    current_gym_id,
    internal_error,
    json_error,
    page_payload,
    parse_date_range,
)
from ..pagination import parse_page_args


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


@pos_bp.post("/transactions")
@require_auth
@require_role(ROLE_GYM_OWNER, ROLE_STAFF)
def create_transaction_route():
    """
    Settle a sale.

    Body: {member_id?, items: [{product_id, quantity}], discount_id?,
           payment_method, notes?}
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "code": "VALIDATION_ERROR", "details": {}}), 400

        gym_id = current_gym_id(data.get("gym_id"))
        payload = {k: v for k, v in data.items() if k != "gym_id"}

        tx = pos_service.create_pos_transaction(gym_id, payload, staff_id=g.current_user.id)
        return jsonify({"transaction": tx.to_dict()}), 201

    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to create POS transaction")


@pos_bp.get("/transactions")
@require_auth
def list_transactions_route():
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        page, limit = parse_page_args(request.args)
        start_date, end_date = parse_date_range(request.args)

        result = pos_service.list_pos_transactions(
            gym_id,
            page=page,
            limit=limit,
            search=request.args.get("search"),
            member_id=request.args.get("member_id", type=int),
            staff_id=request.args.get("staff_id", type=int),
            status=request.args.get("status"),
            start_date=start_date,
            end_date=end_date,
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
        )
        return jsonify(page_payload(result)), 200

    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to list POS transactions")


@pos_bp.get("/transactions/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        tx = pos_service.get_pos_transaction(gym_id, transaction_id)
        return jsonify({"transaction": tx.to_dict()}), 200

    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load POS transaction")


@pos_bp.patch("/transactions/<int:transaction_id>")
@require_auth
@require_role(ROLE_GYM_OWNER)
def update_transaction_route(transaction_id: int):
    """Change status and/or notes. Amounts are immutable."""
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        data = request.get_json(silent=True) or {}
        tx = pos_service.update_pos_transaction(gym_id, transaction_id, data)
        return jsonify({"transaction": tx.to_dict()}), 200

    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to update POS transaction")


@pos_bp.get("/stats")
@require_auth
def stats_route():
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        return jsonify(pos_service.get_pos_stats(gym_id)), 200

    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load POS stats")
