# Overview: Service-layer operations for POS transactions; settles a sale in one database transaction.

"""
POS Settlement Service

create_pos_transaction runs as a single unit of work:

    validate items -> resolve member -> resolve discount -> compute totals
    -> insert transaction -> insert lines -> bump discount usage
    -> lock wallet -> update wallet -> append wallet ledger entry
    -> append gym invoices -> commit

Every write goes through the same session handle, which is committed once at
the end. Any error rolls the whole session back, so no partial settlement is
ever visible. Settlements are not retried: the caller resubmits, and two
identical requests produce two transactions.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Discount, Member, PosTransaction, PosTransactionItem
from ..models.pos import POS_STATUS_COMPLETED, VALID_POS_STATUSES
from gympos.money import ZERO
from gympos.pagination import apply_sort, paginate
from gympos.time_utils import utcnow
from gympos.validation import ValidationError
from .discount_service import (
    DiscountError,
    compute_discount_amount,
    increment_discount_usage,
    resolve_discount,
)
from .invoice_service import append_gym_invoices, schedule_gym_invoices
from .members_service import MemberError, get_member
from .products_service import InvalidLineItems, ProductError, resolve_line_items
from .wallet_service import WalletError, record_sale_income, wallet_type_for_payment_method


class SettlementError(Exception):
    code = "SETTLEMENT_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PosTransactionNotFound(SettlementError):
    code = "POS_TRANSACTION_NOT_FOUND"
    status_code = 404


# Errors a settlement can end with; each carries code, status_code and details.
SETTLEMENT_ERRORS = (SettlementError, ProductError, DiscountError, WalletError, MemberError)

POS_SORT_FIELDS = {"created_at", "total", "subtotal", "transaction_number", "status"}


def _optional_int(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    return value


def _transaction_number(now: datetime) -> str:
    return f"POS-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def create_pos_transaction(
    gym_id: int,
    payload: dict,
    staff_id: int | None = None,
    now: datetime | None = None,
) -> PosTransaction:
    """
    Settle a POS sale.

    payload: {member_id?, items: [{product_id, quantity}], discount_id?,
              payment_method, notes?}

    Returns the committed PosTransaction with its items.

    Raises:
        ValidationError: malformed payload
        InvalidLineItems, InvalidPaymentMethod, MemberNotFound,
        DiscountNotFound, DiscountExpired, DiscountUsageLimitReached,
        DiscountMinimumNotMet, WalletNotFound, WalletInactive,
        ConcurrentBalanceConflict
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    now = now or utcnow()
    session = db.session

    try:
        payment_method = payload.get("payment_method")
        if not payment_method:
            raise ValidationError("payment_method required")
        wallet_type_for_payment_method(payment_method)

        member_id = _optional_int(payload, "member_id")
        discount_id = _optional_int(payload, "discount_id")
        notes = payload.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")

        lines, subtotal = resolve_line_items(gym_id, payload.get("items"))

        if member_id is not None:
            get_member(gym_id, member_id)

        discount = None
        discount_amount = ZERO
        if discount_id is not None:
            discount = resolve_discount(gym_id, discount_id, now)
            discount_amount = compute_discount_amount(discount, subtotal)

        total = subtotal - discount_amount

        tx = PosTransaction(
            gym_id=gym_id,
            member_id=member_id,
            staff_id=staff_id,
            discount_id=discount.id if discount else None,
            transaction_number=_transaction_number(now),
            subtotal=subtotal,
            discount_amount=discount_amount,
            total=total,
            payment_method=payment_method,
            status=POS_STATUS_COMPLETED,
            notes=notes,
            created_at=now,
        )
        session.add(tx)
        session.flush()

        end_dates = []
        for line in lines:
            product = line.product
            start_date = end_date = None
            if product.duration:
                start_date = now
                try:
                    end_date = now + timedelta(days=product.duration * line.quantity)
                except OverflowError:
                    raise InvalidLineItems(
                        "Access period is out of range",
                        details={"product_id": product.id, "quantity": line.quantity},
                    )
                end_dates.append(end_date)

            session.add(PosTransactionItem(
                transaction_id=tx.id,
                product_id=product.id,
                name=product.name,
                category=product.category,
                price=product.price,
                quantity=line.quantity,
                subtotal=line.subtotal,
                start_date=start_date,
                end_date=end_date,
            ))
        session.flush()

        if discount is not None:
            increment_discount_usage(session, discount.id)

        record_sale_income(
            session,
            gym_id=gym_id,
            payment_method=payment_method,
            amount=total,
            reference_id=str(tx.id),
            processed_at=now,
            description=f"POS Transaction {tx.transaction_number}",
        )

        entries = schedule_gym_invoices(
            gym_id=gym_id,
            transaction_id=tx.id,
            now=now,
            end_dates=end_dates,
            fee=current_app.config.get("PLATFORM_FEE_PER_TRANSACTION", ZERO),
            include_extra_month=current_app.config.get("GYM_INVOICE_INCLUDE_EXTRA_MONTH", False),
        )
        append_gym_invoices(session, entries)

        session.commit()
    except (ValidationError, *SETTLEMENT_ERRORS) as exc:
        session.rollback()
        current_app.logger.warning("POS settlement rejected for gym %s: %s", gym_id, exc)
        raise
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(
        "POS transaction %s settled for gym %s: total=%s via %s",
        tx.transaction_number, gym_id, tx.total, tx.payment_method,
    )
    return tx


def get_pos_transaction(gym_id: int, transaction_id: int) -> PosTransaction:
    tx = db.session.query(PosTransaction).filter_by(id=transaction_id, gym_id=gym_id).first()
    if not tx:
        raise PosTransactionNotFound("POS transaction not found")
    return tx


def update_pos_transaction(gym_id: int, transaction_id: int, payload: dict) -> PosTransaction:
    """Only status and notes may change after settlement."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = set(payload) - {"status", "notes"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    tx = get_pos_transaction(gym_id, transaction_id)

    if "status" in payload:
        if payload["status"] not in VALID_POS_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(VALID_POS_STATUSES)}")
        tx.status = payload["status"]

    if "notes" in payload:
        notes = payload["notes"]
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")
        tx.notes = notes

    db.session.commit()
    return tx


def list_pos_transactions(
    gym_id: int | None,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    member_id: int | None = None,
    staff_id: int | None = None,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    q = db.session.query(PosTransaction)
    if gym_id is not None:
        q = q.filter(PosTransaction.gym_id == gym_id)
    if member_id is not None:
        q = q.filter(PosTransaction.member_id == member_id)
    if staff_id is not None:
        q = q.filter(PosTransaction.staff_id == staff_id)
    if status:
        q = q.filter(PosTransaction.status == status)
    if start_date:
        q = q.filter(PosTransaction.created_at >= start_date)
    if end_date:
        q = q.filter(PosTransaction.created_at <= end_date)
    if search:
        pattern = f"%{search}%"
        q = q.outerjoin(Member, PosTransaction.member_id == Member.id).filter(
            db.or_(
                PosTransaction.transaction_number.ilike(pattern),
                Member.name.ilike(pattern),
            )
        )

    q = apply_sort(q, PosTransaction, sort_by, sort_order, POS_SORT_FIELDS, "created_at")
    return paginate(q, page, limit)


def get_pos_stats(gym_id: int | None) -> dict:
    tx_q = db.session.query(PosTransaction)
    discount_q = db.session.query(Discount)
    if gym_id is not None:
        tx_q = tx_q.filter(PosTransaction.gym_id == gym_id)
        discount_q = discount_q.filter(Discount.gym_id == gym_id)

    total_transactions = tx_q.count()
    revenue = (
        tx_q.filter(PosTransaction.status == POS_STATUS_COMPLETED)
        .with_entities(func.sum(PosTransaction.total))
        .scalar()
    )
    total_discounts = discount_q.count()
    discount_usage = discount_q.with_entities(func.sum(Discount.used_count)).scalar()

    return {
        "total_transactions": total_transactions,
        "total_revenue": str(revenue if revenue is not None else ZERO),
        "total_discounts": total_discounts,
        "total_discount_usage": int(discount_usage or 0),
    }
