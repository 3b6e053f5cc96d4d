# Overview: Helpers shared by API blueprints; tenant resolution and error translation.

from flask import jsonify, current_app

from ..services.discount_service import DiscountError
from ..services.members_service import MemberError
from ..services.pos_service import SettlementError
from ..services.products_service import ProductError
from ..services.tenant_service import TenantAccessError, resolve_gym_id
from ..services.wallet_service import WalletError
from ..time_utils import parse_iso_datetime
from ..validation import ConflictError, ValidationError


# Errors a route translates into a JSON response instead of a 500
HANDLED_ERRORS = (
    ValidationError,
    ConflictError,
    TenantAccessError,
    ProductError,
    MemberError,
    DiscountError,
    WalletError,
    SettlementError,
)


def current_gym_id(requested=None) -> int:
    """Gym of the request; super admins pass gym_id explicitly."""
    if requested is not None and (isinstance(requested, bool) or not isinstance(requested, int)):
        raise ValidationError("gym_id must be an integer")
    return resolve_gym_id(requested)


def json_error(exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "code": "VALIDATION_ERROR", "details": {}}), 400
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "code": "CONFLICT", "details": {}}), 409
    if isinstance(exc, TenantAccessError):
        return jsonify({"error": "Gym not found", "code": "GYM_NOT_FOUND", "details": {}}), 404
    if hasattr(exc, "status_code") and hasattr(exc, "code"):
        return jsonify({
            "error": str(exc),
            "code": exc.code,
            "details": getattr(exc, "details", {}) or {},
        }), exc.status_code
    current_app.logger.exception("Unhandled error")
    return jsonify({"error": "Internal server error"}), 500


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def parse_bool_arg(args, key: str):
    raw = args.get(key)
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered in {"true", "1"}:
        return True
    if lowered in {"false", "0"}:
        return False
    raise ValidationError(f"{key} must be true or false")


def parse_date_range(args) -> tuple:
    """start_date/end_date query args as UTC-naive datetimes (ISO-8601)."""
    try:
        start = parse_iso_datetime(args.get("start_date"))
        end = parse_iso_datetime(args.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 datetimes")
    return start, end


def page_payload(result: dict) -> dict:
    return {"data": [row.to_dict() for row in result["data"]], "meta": result["meta"]}
