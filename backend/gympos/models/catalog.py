from __future__ import annotations

from ..extensions import db
from gympos.money import money_str
from gympos.time_utils import to_utc_z

CATEGORY_MEMBERSHIP = "membership"
CATEGORY_CLASS = "class"
CATEGORY_RETAIL = "retail"

VALID_CATEGORIES = (CATEGORY_MEMBERSHIP, CATEGORY_CLASS, CATEGORY_RETAIL)


class Product(db.Model):
    """
    Sellable item of a gym: membership plans, class passes, retail goods.

    duration is expressed in days and only set for products that grant
    access for a period (membership, class packages).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("gym_id", "name", name="uq_products_gym_name"),
        db.Index("ix_products_gym_category", "gym_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gym_id = db.Column(db.Integer, db.ForeignKey("gyms.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(16), nullable=False, default=CATEGORY_RETAIL)

    price = db.Column(db.Numeric(14, 2), nullable=True)
    duration = db.Column(db.Integer, nullable=True)  # days of access granted per unit
    capacity = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    gym = db.relationship("Gym", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} gym_id={self.gym_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gym_id": self.gym_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": money_str(self.price),
            "duration": self.duration,
            "capacity": self.capacity,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
