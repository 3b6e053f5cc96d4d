# Overview: Flask API routes for gym invoices; platform fees owed per billing month.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_GYM_OWNER
from ..services import invoice_service
from ..validation import ValidationError
from .common import HANDLED_ERRORS, current_gym_id, internal_error, json_error

invoices_bp = Blueprint("gym_invoices", __name__, url_prefix="/api/gym-invoices")


@invoices_bp.get("")
@require_auth
@require_role(ROLE_GYM_OWNER)
def list_gym_invoices_route():
    """Invoice lines for ?month=&year= (defaults to the current month)."""
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        try:
            result = invoice_service.list_gym_invoices(
                gym_id,
                month=request.args.get("month", type=int),
                year=request.args.get("year", type=int),
            )
        except ValueError as e:
            raise ValidationError(str(e))
        return jsonify(result), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to list gym invoices")


@invoices_bp.get("/summary")
@require_auth
@require_role(ROLE_GYM_OWNER)
def gym_invoice_summary_route():
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        result = invoice_service.get_yearly_summary(gym_id, year=request.args.get("year", type=int))
        return jsonify(result), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load gym invoice summary")
