from __future__ import annotations

from ..extensions import db
from gympos.money import money_str
from gympos.time_utils import to_utc_z

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"

VALID_DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)


class Discount(db.Model):
    """
    Gym-scoped promotional rule reducing a POS subtotal.

    value is a percent (0-100) for percentage discounts and an amount
    for fixed ones. Discounts are never deleted, only deactivated.
    used_count is only changed by atomic increments at settlement time.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.UniqueConstraint("gym_id", "code", name="uq_discounts_gym_code"),
        db.Index("ix_discounts_gym_active", "gym_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gym_id = db.Column(db.Integer, db.ForeignKey("gyms.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    discount_type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Numeric(14, 2), nullable=False)

    min_purchase = db.Column(db.Numeric(14, 2), nullable=True)
    max_discount = db.Column(db.Numeric(14, 2), nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    gym = db.relationship("Gym", backref=db.backref("discounts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gym_id": self.gym_id,
            "code": self.code,
            "name": self.name,
            "type": self.discount_type,
            "value": money_str(self.value),
            "min_purchase": money_str(self.min_purchase),
            "max_discount": money_str(self.max_discount),
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until),
            "usage_limit": self.usage_limit,
            "used_count": self.used_count,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
