# Overview: Flask API routes for gym members; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_GYM_OWNER, ROLE_STAFF
from ..pagination import parse_page_args
from ..services import members_service
from .common import HANDLED_ERRORS, current_gym_id, internal_error, json_error, page_payload

members_bp = Blueprint("members", __name__, url_prefix="/api/members")


@members_bp.get("")
@require_auth
def list_members_route():
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        page, limit = parse_page_args(request.args)
        result = members_service.list_members(
            gym_id,
            page=page,
            limit=limit,
            search=request.args.get("search"),
            membership_status=request.args.get("membership_status"),
        )
        return jsonify(page_payload(result)), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to list members")


@members_bp.post("")
@require_auth
@require_role(ROLE_GYM_OWNER, ROLE_STAFF)
def create_member_route():
    payload = request.get_json(silent=True) or {}
    try:
        gym_id = current_gym_id(payload.pop("gym_id", None))
        member = members_service.create_member(gym_id, payload)
        return jsonify({"member": member.to_dict()}), 201
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to create member")


@members_bp.get("/<int:member_id>")
@require_auth
def get_member_route(member_id: int):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        member = members_service.get_member(gym_id, member_id)
        return jsonify({"member": member.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load member")
