from __future__ import annotations

from ..extensions import db
from gympos.money import money_str
from gympos.time_utils import to_utc_z

POS_STATUS_PENDING = "pending"
POS_STATUS_COMPLETED = "completed"
POS_STATUS_CANCELLED = "cancelled"
POS_STATUS_REFUNDED = "refunded"

VALID_POS_STATUSES = (
    POS_STATUS_PENDING,
    POS_STATUS_COMPLETED,
    POS_STATUS_CANCELLED,
    POS_STATUS_REFUNDED,
)

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_QRIS = "qris"
PAYMENT_TRANSFER = "transfer"

VALID_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_QRIS, PAYMENT_TRANSFER)


class PosTransaction(db.Model):
    """
    One point-of-sale sale event.

    Amounts are fixed at creation:
    - total == subtotal - discount_amount
    - subtotal == sum(item.subtotal)
    Only status and notes change afterwards.
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.UniqueConstraint("gym_id", "transaction_number", name="uq_pos_transactions_gym_number"),
        db.Index("ix_pos_transactions_gym_status_created", "gym_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gym_id = db.Column(db.Integer, db.ForeignKey("gyms.id"), nullable=False, index=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=True, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)

    # Human-readable number (e.g., "POS-20260119-000042")
    transaction_number = db.Column(db.String(64), nullable=False)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=POS_STATUS_COMPLETED, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    member = db.relationship("Member")
    staff = db.relationship("User")
    items = db.relationship(
        "PosTransactionItem",
        back_populates="transaction",
        order_by="PosTransactionItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "gym_id": self.gym_id,
            "member_id": self.member_id,
            "staff_id": self.staff_id,
            "discount_id": self.discount_id,
            "transaction_number": self.transaction_number,
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "total": money_str(self.total),
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "member": (
                {"id": self.member.id, "name": self.member.name, "email": self.member.email, "phone": self.member.phone}
                if self.member else None
            ),
            "staff": (
                {"id": self.staff.id, "name": self.staff.name, "email": self.staff.email}
                if self.staff else None
            ),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PosTransactionItem(db.Model):
    """
    Line of a POS transaction with a snapshot of the product at sale time.

    start_date/end_date are set for duration-bearing products only.
    """
    __tablename__ = "pos_transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(16), nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    transaction = db.relationship("PosTransaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category,
            "price": money_str(self.price),
            "quantity": self.quantity,
            "subtotal": money_str(self.subtotal),
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
        }
