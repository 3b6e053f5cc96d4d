# Overview: Service-layer operations for wallets; the only code that moves wallet balances.

"""
Wallet & Wallet Ledger Service

Each gym has one wallet per payment channel (cash, card, qris, bank_transfer).
Every balance change appends exactly one WalletTransaction in the same
database transaction, so that:

    wallet.current_balance == wallet.initial_balance + sum(wallet_transactions.amount)

BALANCE UPDATES:
- The wallet row is read with SELECT ... FOR UPDATE.
- The change is applied as an atomic increment (current_balance = current_balance + :delta)
  guarded by the version read under the lock.
- An update that touches zero rows raises ConcurrentBalanceConflict (409, retryable by the caller).

Write helpers that take a `session` argument never commit; the caller owns
the unit of work.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Wallet, WalletTransaction
from ..models.pos import (
    PAYMENT_CARD,
    PAYMENT_CASH,
    PAYMENT_QRIS,
    PAYMENT_TRANSFER,
    VALID_PAYMENT_METHODS,
)
from ..models.wallets import (
    REF_ADJUSTMENT,
    REF_MANUAL,
    REF_POS_TRANSACTION,
    REF_WITHDRAWAL,
    TX_ADJUSTMENT,
    TX_FEE,
    TX_INCOME,
    TX_WITHDRAWAL,
    VALID_REFERENCE_TYPES,
    VALID_TRANSACTION_TYPES,
    VALID_WALLET_TYPES,
    WALLET_BANK_TRANSFER,
    WALLET_CARD,
    WALLET_CASH,
    WALLET_QRIS,
)
from gympos.money import CENT, ZERO, MoneyError, to_money
from gympos.pagination import paginate
from gympos.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


class WalletError(Exception):
    """Base class for wallet operation errors."""
    code = "WALLET_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvalidPaymentMethod(WalletError):
    code = "INVALID_PAYMENT_METHOD"


class WalletNotFound(WalletError):
    code = "WALLET_NOT_FOUND"
    status_code = 404


class WalletInactive(WalletError):
    code = "WALLET_INACTIVE"


class InsufficientBalance(WalletError):
    code = "INSUFFICIENT_BALANCE"


class InvalidWalletTransaction(WalletError):
    code = "INVALID_WALLET_TRANSACTION"


class ConcurrentBalanceConflict(WalletError):
    code = "CONCURRENT_BALANCE_CONFLICT"
    status_code = 409


# =============================================================================
# PAYMENT METHOD -> WALLET TYPE
# =============================================================================

PAYMENT_METHOD_WALLET_TYPES = {
    PAYMENT_CASH: WALLET_CASH,
    PAYMENT_CARD: WALLET_CARD,
    PAYMENT_QRIS: WALLET_QRIS,
    PAYMENT_TRANSFER: WALLET_BANK_TRANSFER,
}

if set(PAYMENT_METHOD_WALLET_TYPES) != set(VALID_PAYMENT_METHODS):
    raise RuntimeError("every payment method must map to a wallet type")


def wallet_type_for_payment_method(payment_method: str) -> str:
    try:
        return PAYMENT_METHOD_WALLET_TYPES[payment_method]
    except (KeyError, TypeError):
        raise InvalidPaymentMethod(
            f"Invalid payment method: {payment_method}. Must be one of {list(VALID_PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )


def _require_wallet_type(wallet_type: str) -> None:
    if wallet_type not in VALID_WALLET_TYPES:
        raise WalletError(
            f"Invalid wallet type: {wallet_type}. Must be one of {list(VALID_WALLET_TYPES)}",
            details={"wallet_type": wallet_type},
        )


# =============================================================================
# LEDGER PRIMITIVES (caller owns the transaction)
# =============================================================================

@dataclass
class WalletEntry:
    wallet_id: int
    transaction_type: str
    amount: Decimal  # signed
    net_amount: Decimal
    fee_amount: Decimal = ZERO
    description: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    processed_at: datetime | None = None


def find_wallet(session, gym_id: int, wallet_type: str, lock: bool = True) -> Wallet | None:
    q = session.query(Wallet).filter_by(gym_id=gym_id, wallet_type=wallet_type)
    if lock:
        q = lock_for_update(q)
    return q.first()


def apply_wallet_delta(
    session,
    wallet: Wallet,
    *,
    balance: Decimal,
    income: Decimal = ZERO,
    today_income: Decimal = ZERO,
    withdrawals: Decimal = ZERO,
    fees: Decimal = ZERO,
) -> Wallet:
    """
    Apply signed deltas to a wallet as one atomic UPDATE.

    The UPDATE is conditioned on the version read together with the wallet;
    if another writer got there first no row matches and
    ConcurrentBalanceConflict is raised.
    """
    seen_version = wallet.version_id
    updated = (
        session.query(Wallet)
        .filter(Wallet.id == wallet.id, Wallet.version_id == seen_version)
        .update(
            {
                Wallet.current_balance: Wallet.current_balance + balance,
                Wallet.total_income: Wallet.total_income + income,
                Wallet.today_income: Wallet.today_income + today_income,
                Wallet.total_withdrawals: Wallet.total_withdrawals + withdrawals,
                Wallet.total_fees: Wallet.total_fees + fees,
                Wallet.version_id: Wallet.version_id + 1,
                Wallet.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise ConcurrentBalanceConflict(
            "Wallet balance changed concurrently; resubmit the request",
            details={"wallet_id": wallet.id, "expected_version": seen_version},
        )
    session.refresh(wallet)
    return wallet


def append_wallet_transaction(session, entry: WalletEntry) -> WalletTransaction:
    """Append-only: ledger rows are never updated or deleted."""
    tx = WalletTransaction(
        wallet_id=entry.wallet_id,
        transaction_type=entry.transaction_type,
        amount=entry.amount,
        fee_amount=entry.fee_amount,
        net_amount=entry.net_amount,
        description=entry.description,
        reference_type=entry.reference_type,
        reference_id=entry.reference_id,
        processed_at=entry.processed_at or utcnow(),
    )
    session.add(tx)
    session.flush()
    return tx


def _require_usable_wallet(session, gym_id: int, wallet_type: str) -> Wallet:
    wallet = find_wallet(session, gym_id, wallet_type, lock=True)
    if not wallet:
        raise WalletNotFound(
            f"Wallet for {wallet_type} not found",
            details={"gym_id": gym_id, "wallet_type": wallet_type},
        )
    if not wallet.is_active:
        raise WalletInactive(
            f"Wallet for {wallet_type} is not active",
            details={"wallet_id": wallet.id, "wallet_type": wallet_type},
        )
    return wallet


def record_sale_income(
    session,
    *,
    gym_id: int,
    payment_method: str,
    amount: Decimal,
    reference_id: str,
    processed_at: datetime,
    description: str | None = None,
) -> tuple[Wallet, WalletTransaction]:
    """Credit a POS sale to the wallet of its payment channel."""
    wallet_type = wallet_type_for_payment_method(payment_method)
    wallet = _require_usable_wallet(session, gym_id, wallet_type)

    apply_wallet_delta(session, wallet, balance=amount, income=amount, today_income=amount)

    tx = append_wallet_transaction(session, WalletEntry(
        wallet_id=wallet.id,
        transaction_type=TX_INCOME,
        amount=amount,
        net_amount=amount,
        description=description,
        reference_type=REF_POS_TRANSACTION,
        reference_id=reference_id,
        processed_at=processed_at,
    ))
    return wallet, tx


# =============================================================================
# WALLET MANAGEMENT
# =============================================================================

def provision_wallets(session, gym_id: int) -> list[Wallet]:
    """Create any missing wallet types for a gym. Safe to call repeatedly."""
    existing = {
        w.wallet_type: w
        for w in session.query(Wallet).filter_by(gym_id=gym_id).all()
    }
    wallets = []
    for wallet_type in VALID_WALLET_TYPES:
        wallet = existing.get(wallet_type)
        if wallet is None:
            wallet = Wallet(
                gym_id=gym_id,
                wallet_type=wallet_type,
                initial_balance=ZERO,
                current_balance=ZERO,
                total_income=ZERO,
                total_withdrawals=ZERO,
                total_fees=ZERO,
                today_income=ZERO,
                is_active=True,
            )
            session.add(wallet)
        wallets.append(wallet)
    session.flush()
    return wallets


def get_wallets(gym_id: int) -> list[Wallet]:
    return (
        db.session.query(Wallet)
        .filter_by(gym_id=gym_id)
        .order_by(Wallet.id)
        .all()
    )


def get_wallet_by_type(gym_id: int, wallet_type: str) -> Wallet:
    """Return the gym's wallet of a type, creating it on first access."""
    _require_wallet_type(wallet_type)
    wallet = find_wallet(db.session, gym_id, wallet_type, lock=False)
    if wallet:
        return wallet

    provision_wallets(db.session, gym_id)
    db.session.commit()
    return find_wallet(db.session, gym_id, wallet_type, lock=False)


def set_wallet_active(gym_id: int, wallet_type: str, is_active: bool) -> Wallet:
    wallet = get_wallet_by_type(gym_id, wallet_type)
    wallet.is_active = bool(is_active)
    db.session.commit()
    return wallet


# =============================================================================
# MANUAL WALLET TRANSACTIONS
# =============================================================================

def _withdrawal_fee(amount: Decimal) -> Decimal:
    bps = current_app.config.get("WALLET_WITHDRAWAL_FEE_BPS", 0)
    return (amount * Decimal(bps) / Decimal(10000)).quantize(CENT, rounding=ROUND_HALF_UP)


def create_wallet_transaction(
    gym_id: int,
    wallet_type: str,
    transaction_type: str,
    amount,
    description: str | None = None,
    reference_type: str | None = None,
    reference_id: str | None = None,
) -> WalletTransaction:
    """
    Record a manual wallet movement and update the wallet in one transaction.

    - income:     +amount; total_income and today_income grow
    - withdrawal: -amount; fee (bps of amount) is taken out of the payout
    - fee:        -amount; total_fees grows
    - adjustment: signed amount; no cumulative totals change

    Raises:
        WalletError subclasses for invalid input, missing/inactive wallet,
        insufficient balance or a concurrent balance change.
    """
    _require_wallet_type(wallet_type)

    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise InvalidWalletTransaction(
            f"Invalid transaction type: {transaction_type}. Must be one of {list(VALID_TRANSACTION_TYPES)}"
        )
    if reference_type is not None and reference_type not in VALID_REFERENCE_TYPES:
        raise InvalidWalletTransaction(
            f"Invalid reference type: {reference_type}. Must be one of {list(VALID_REFERENCE_TYPES)}"
        )

    try:
        amount = to_money(amount)
    except MoneyError as exc:
        raise InvalidWalletTransaction(str(exc))

    if transaction_type == TX_ADJUSTMENT:
        if amount == 0:
            raise InvalidWalletTransaction("Adjustment amount must be non-zero")
    elif amount <= 0:
        raise InvalidWalletTransaction("Amount must be greater than 0")

    session = db.session
    try:
        wallet = _require_usable_wallet(session, gym_id, wallet_type)
        now = utcnow()

        if transaction_type == TX_INCOME:
            apply_wallet_delta(session, wallet, balance=amount, income=amount, today_income=amount)
            entry = WalletEntry(
                wallet_id=wallet.id,
                transaction_type=TX_INCOME,
                amount=amount,
                net_amount=amount,
                reference_type=reference_type or REF_MANUAL,
            )

        elif transaction_type == TX_WITHDRAWAL:
            minimum = to_money(current_app.config.get("WALLET_MIN_WITHDRAWAL", 0))
            if amount < minimum:
                raise InvalidWalletTransaction(
                    f"Minimum withdrawal is {minimum}",
                    details={"minimum": str(minimum)},
                )
            if wallet.current_balance < amount:
                raise InsufficientBalance(
                    "Insufficient wallet balance",
                    details={"current_balance": str(wallet.current_balance), "requested": str(amount)},
                )
            fee = _withdrawal_fee(amount)
            apply_wallet_delta(session, wallet, balance=-amount, withdrawals=amount, fees=fee)
            entry = WalletEntry(
                wallet_id=wallet.id,
                transaction_type=TX_WITHDRAWAL,
                amount=-amount,
                fee_amount=fee,
                net_amount=-(amount - fee),
                reference_type=reference_type or REF_WITHDRAWAL,
            )

        elif transaction_type == TX_FEE:
            apply_wallet_delta(session, wallet, balance=-amount, fees=amount)
            entry = WalletEntry(
                wallet_id=wallet.id,
                transaction_type=TX_FEE,
                amount=-amount,
                fee_amount=amount,
                net_amount=-amount,
                reference_type=reference_type or REF_MANUAL,
            )

        else:
            apply_wallet_delta(session, wallet, balance=amount)
            entry = WalletEntry(
                wallet_id=wallet.id,
                transaction_type=TX_ADJUSTMENT,
                amount=amount,
                net_amount=amount,
                reference_type=reference_type or REF_ADJUSTMENT,
            )

        entry.description = description
        entry.reference_id = reference_id
        entry.processed_at = now
        tx = append_wallet_transaction(session, entry)
        session.commit()
    except Exception:
        session.rollback()
        raise

    return tx


def top_up_wallet(gym_id: int, wallet_type: str, amount, description: str | None = None, **kwargs) -> WalletTransaction:
    return create_wallet_transaction(
        gym_id, wallet_type, TX_INCOME, amount,
        description=description or "Wallet top up", **kwargs,
    )


def withdraw_from_wallet(gym_id: int, wallet_type: str, amount, description: str | None = None, **kwargs) -> WalletTransaction:
    return create_wallet_transaction(
        gym_id, wallet_type, TX_WITHDRAWAL, amount,
        description=description or "Wallet withdrawal", **kwargs,
    )


def adjust_wallet(gym_id: int, wallet_type: str, amount, description: str | None = None, **kwargs) -> WalletTransaction:
    return create_wallet_transaction(
        gym_id, wallet_type, TX_ADJUSTMENT, amount,
        description=description or "Wallet adjustment", **kwargs,
    )


# =============================================================================
# HISTORY & REPORTING
# =============================================================================

def list_wallet_transactions(
    gym_id: int,
    *,
    page: int = 1,
    limit: int = 10,
    wallet_type: str | None = None,
    transaction_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
) -> dict:
    q = (
        db.session.query(WalletTransaction)
        .join(Wallet, WalletTransaction.wallet_id == Wallet.id)
        .filter(Wallet.gym_id == gym_id)
    )
    if wallet_type:
        q = q.filter(Wallet.wallet_type == wallet_type)
    if transaction_type:
        q = q.filter(WalletTransaction.transaction_type == transaction_type)
    if start_date:
        q = q.filter(WalletTransaction.processed_at >= start_date)
    if end_date:
        q = q.filter(WalletTransaction.processed_at <= end_date)
    if search:
        pattern = f"%{search}%"
        q = q.filter(
            db.or_(
                WalletTransaction.description.ilike(pattern),
                WalletTransaction.reference_id.ilike(pattern),
            )
        )

    q = q.order_by(WalletTransaction.processed_at.desc(), WalletTransaction.id.desc())
    return paginate(q, page, limit)


def get_wallet_transaction(gym_id: int, transaction_id: int) -> WalletTransaction | None:
    return (
        db.session.query(WalletTransaction)
        .join(Wallet, WalletTransaction.wallet_id == Wallet.id)
        .filter(WalletTransaction.id == transaction_id, Wallet.gym_id == gym_id)
        .first()
    )


def get_wallet_stats(gym_id: int) -> dict:
    base = (
        db.session.query(WalletTransaction)
        .join(Wallet, WalletTransaction.wallet_id == Wallet.id)
        .filter(Wallet.gym_id == gym_id)
    )

    counts = dict(
        base.with_entities(WalletTransaction.transaction_type, func.count(WalletTransaction.id))
        .group_by(WalletTransaction.transaction_type)
        .all()
    )
    volume = base.with_entities(func.sum(WalletTransaction.amount)).scalar()
    balance = (
        db.session.query(func.sum(Wallet.current_balance))
        .filter(Wallet.gym_id == gym_id)
        .scalar()
    )

    return {
        "total_transactions": sum(counts.values()),
        "total_income": counts.get(TX_INCOME, 0),
        "total_withdrawals": counts.get(TX_WITHDRAWAL, 0),
        "total_fees": counts.get(TX_FEE, 0),
        "total_adjustments": counts.get(TX_ADJUSTMENT, 0),
        "total_volume": str(to_money(volume or 0)),
        "total_wallet_balance": str(to_money(balance or 0)),
    }


def reset_today_income(gym_id: int | None = None) -> int:
    """Zero today_income (daily job). Idempotent, so it is retried on lock errors."""
    def _op():
        q = db.session.query(Wallet)
        if gym_id is not None:
            q = q.filter(Wallet.gym_id == gym_id)
        count = q.update(
            {Wallet.today_income: ZERO, Wallet.version_id: Wallet.version_id + 1},
            synchronize_session=False,
        )
        db.session.commit()
        return count

    return run_with_retry(_op, label="reset_today_income")


def reconcile_wallet(wallet_id: int) -> dict:
    """
    Compare a wallet balance with its ledger.

    Any difference is a correctness bug; nothing is corrected here.
    """
    wallet = db.session.query(Wallet).filter_by(id=wallet_id).first()
    if not wallet:
        raise WalletNotFound(f"Wallet {wallet_id} not found")

    ledger_sum = (
        db.session.query(func.sum(WalletTransaction.amount))
        .filter(WalletTransaction.wallet_id == wallet_id)
        .scalar()
    )
    expected = to_money(wallet.initial_balance) + to_money(ledger_sum or 0)
    actual = to_money(wallet.current_balance)

    return {
        "wallet_id": wallet.id,
        "gym_id": wallet.gym_id,
        "wallet_type": wallet.wallet_type,
        "expected_balance": str(expected),
        "current_balance": str(actual),
        "difference": str(actual - expected),
        "balanced": actual == expected,
    }
