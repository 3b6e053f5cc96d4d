# Overview: Flask API routes for gym wallets; balances, history and manual movements.

"""
Wallet API routes.

Balances only move through wallet_service; every movement appends a wallet
transaction. Manual movements (top-up, withdrawal, fee, adjustment) require
the gym_owner role.
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_GYM_OWNER
from ..models.wallets import TX_FEE
from ..pagination import parse_page_args
from ..services import wallet_service
from .common import (
    HANDLED_ERRORS,
    current_gym_id,
    internal_error,
    json_error,
    page_payload,
    parse_date_range,
)

wallets_bp = Blueprint("wallets", __name__, url_prefix="/api/wallets")


@wallets_bp.get("")
@require_auth
def list_wallets_route():
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        wallets = wallet_service.get_wallets(gym_id)
        return jsonify({"wallets": [w.to_dict() for w in wallets]}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to list wallets")


@wallets_bp.get("/stats")
@require_auth
def wallet_stats_route():
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        return jsonify(wallet_service.get_wallet_stats(gym_id)), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load wallet stats")


@wallets_bp.get("/transactions")
@require_auth
def list_wallet_transactions_route():
    """
    Wallet ledger history.

    Query params: page, limit, wallet_type, transaction_type, start_date,
    end_date, search
    """
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        page, limit = parse_page_args(request.args)
        start_date, end_date = parse_date_range(request.args)
        result = wallet_service.list_wallet_transactions(
            gym_id,
            page=page,
            limit=limit,
            wallet_type=request.args.get("wallet_type"),
            transaction_type=request.args.get("transaction_type"),
            start_date=start_date,
            end_date=end_date,
            search=request.args.get("search"),
        )
        return jsonify(page_payload(result)), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to list wallet transactions")


@wallets_bp.get("/transactions/<int:transaction_id>")
@require_auth
def get_wallet_transaction_route(transaction_id: int):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        tx = wallet_service.get_wallet_transaction(gym_id, transaction_id)
        if not tx:
            return jsonify({"error": "Wallet transaction not found", "code": "WALLET_TRANSACTION_NOT_FOUND", "details": {}}), 404
        return jsonify({"transaction": tx.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load wallet transaction")


@wallets_bp.get("/<wallet_type>")
@require_auth
def get_wallet_route(wallet_type: str):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        wallet = wallet_service.get_wallet_by_type(gym_id, wallet_type)
        return jsonify({"wallet": wallet.to_dict()}), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to load wallet")


@wallets_bp.get("/<wallet_type>/reconcile")
@require_auth
@require_role(ROLE_GYM_OWNER)
def reconcile_wallet_route(wallet_type: str):
    try:
        gym_id = current_gym_id(request.args.get("gym_id", type=int))
        wallet = wallet_service.get_wallet_by_type(gym_id, wallet_type)
        return jsonify(wallet_service.reconcile_wallet(wallet.id)), 200
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to reconcile wallet")


def _set_active(wallet_type: str, is_active: bool):
    data = request.get_json(silent=True) or {}
    gym_id = current_gym_id(data.get("gym_id"))
    wallet = wallet_service.set_wallet_active(gym_id, wallet_type, is_active)
    return jsonify({"wallet": wallet.to_dict()}), 200


@wallets_bp.post("/<wallet_type>/activate")
@require_auth
@require_role(ROLE_GYM_OWNER)
def activate_wallet_route(wallet_type: str):
    try:
        return _set_active(wallet_type, True)
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to activate wallet")


@wallets_bp.post("/<wallet_type>/deactivate")
@require_auth
@require_role(ROLE_GYM_OWNER)
def deactivate_wallet_route(wallet_type: str):
    try:
        return _set_active(wallet_type, False)
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to deactivate wallet")


def _movement(wallet_type: str, operation):
    data = request.get_json(silent=True) or {}
    gym_id = current_gym_id(data.get("gym_id"))
    if data.get("amount") is None:
        return jsonify({"error": "amount required", "code": "VALIDATION_ERROR", "details": {}}), 400

    tx = operation(
        gym_id,
        wallet_type,
        data["amount"],
        description=data.get("description"),
        reference_id=data.get("reference_id"),
    )
    wallet = wallet_service.get_wallet_by_type(gym_id, wallet_type)
    return jsonify({"transaction": tx.to_dict(), "wallet": wallet.to_dict()}), 201


def _record_fee(gym_id, wallet_type, amount, description=None, reference_id=None):
    return wallet_service.create_wallet_transaction(
        gym_id, wallet_type, TX_FEE, amount,
        description=description or "Wallet fee",
        reference_id=reference_id,
    )


@wallets_bp.post("/<wallet_type>/top-up")
@require_auth
@require_role(ROLE_GYM_OWNER)
def top_up_route(wallet_type: str):
    try:
        return _movement(wallet_type, wallet_service.top_up_wallet)
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to top up wallet")


@wallets_bp.post("/<wallet_type>/withdraw")
@require_auth
@require_role(ROLE_GYM_OWNER)
def withdraw_route(wallet_type: str):
    try:
        return _movement(wallet_type, wallet_service.withdraw_from_wallet)
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to withdraw from wallet")


@wallets_bp.post("/<wallet_type>/fee")
@require_auth
@require_role(ROLE_GYM_OWNER)
def fee_route(wallet_type: str):
    try:
        return _movement(wallet_type, _record_fee)
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to record wallet fee")


@wallets_bp.post("/<wallet_type>/adjust")
@require_auth
@require_role(ROLE_GYM_OWNER)
def adjust_route(wallet_type: str):
    try:
        return _movement(wallet_type, wallet_service.adjust_wallet)
    except HANDLED_ERRORS as e:
        return json_error(e)
    except Exception:
        return internal_error("Failed to adjust wallet")
