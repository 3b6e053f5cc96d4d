from __future__ import annotations

from ..extensions import db
from gympos.money import money_str
from gympos.time_utils import to_utc_z

WALLET_CASH = "cash"
WALLET_CARD = "card"
WALLET_QRIS = "qris"
WALLET_BANK_TRANSFER = "bank_transfer"

VALID_WALLET_TYPES = (WALLET_CASH, WALLET_CARD, WALLET_QRIS, WALLET_BANK_TRANSFER)

TX_INCOME = "income"
TX_WITHDRAWAL = "withdrawal"
TX_FEE = "fee"
TX_ADJUSTMENT = "adjustment"

VALID_TRANSACTION_TYPES = (TX_INCOME, TX_WITHDRAWAL, TX_FEE, TX_ADJUSTMENT)

REF_POS_TRANSACTION = "pos_transaction"
REF_MANUAL = "manual"
REF_WITHDRAWAL = "withdrawal"
REF_ADJUSTMENT = "adjustment"

VALID_REFERENCE_TYPES = (REF_POS_TRANSACTION, REF_MANUAL, REF_WITHDRAWAL, REF_ADJUSTMENT)


class Wallet(db.Model):
    """
    Running balance of one gym for one payment channel.

    Invariant: current_balance == initial_balance + sum(transactions.amount).
    Balances are only changed by atomic increments in wallet_service.
    """
    __tablename__ = "wallets"
    __table_args__ = (
        db.UniqueConstraint("gym_id", "wallet_type", name="uq_wallets_gym_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gym_id = db.Column(db.Integer, db.ForeignKey("gyms.id"), nullable=False, index=True)
    wallet_type = db.Column(db.String(16), nullable=False)

    initial_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    current_balance = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_income = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_withdrawals = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_fees = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    today_income = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    gym = db.relationship("Gym", backref=db.backref("wallets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gym_id": self.gym_id,
            "wallet_type": self.wallet_type,
            "initial_balance": money_str(self.initial_balance),
            "current_balance": money_str(self.current_balance),
            "total_income": money_str(self.total_income),
            "total_withdrawals": money_str(self.total_withdrawals),
            "total_fees": money_str(self.total_fees),
            "today_income": money_str(self.today_income),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WalletTransaction(db.Model):
    """
    Append-only wallet ledger entry.

    amount is signed: income is positive, withdrawals and fees are negative,
    adjustments carry their own sign. Rows are never updated or deleted.
    """
    __tablename__ = "wallet_transactions"
    __table_args__ = (
        db.Index("ix_wallet_transactions_wallet_processed", "wallet_id", "processed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    fee_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(14, 2), nullable=False)

    description = db.Column(db.Text, nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    wallet = db.relationship("Wallet", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "wallet_id": self.wallet_id,
            "wallet_type": self.wallet.wallet_type if self.wallet else None,
            "transaction_type": self.transaction_type,
            "amount": money_str(self.amount),
            "fee_amount": money_str(self.fee_amount),
            "net_amount": money_str(self.net_amount),
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
        }
