from __future__ import annotations

from ..extensions import db
from gympos.money import money_str
from gympos.time_utils import to_utc_z


class GymInvoice(db.Model):
    """
    Platform fee owed by a gym for one month of service sold.

    A multi-month membership sale produces one row per month it spans.
    """
    __tablename__ = "gym_invoices"
    __table_args__ = (
        db.Index("ix_gym_invoices_gym_period", "gym_id", "year", "month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gym_id = db.Column(db.Integer, db.ForeignKey("gyms.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)

    fee = db.Column(db.Numeric(14, 2), nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    month = db.Column(db.Integer, nullable=False)  # 1-12
    year = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship("PosTransaction", backref=db.backref("gym_invoices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gym_id": self.gym_id,
            "transaction_id": self.transaction_id,
            "fee": money_str(self.fee),
            "transaction_date": to_utc_z(self.transaction_date),
            "month": self.month,
            "year": self.year,
            "created_at": to_utc_z(self.created_at),
        }
