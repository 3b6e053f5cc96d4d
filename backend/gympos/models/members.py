from __future__ import annotations

from ..extensions import db
from gympos.time_utils import to_utc_z

MEMBERSHIP_ACTIVE = "active"
MEMBERSHIP_INACTIVE = "inactive"
MEMBERSHIP_EXPIRED = "expired"

VALID_MEMBERSHIP_STATUSES = (MEMBERSHIP_ACTIVE, MEMBERSHIP_INACTIVE, MEMBERSHIP_EXPIRED)


class Member(db.Model):
    """
    Gym member (the buyer on a POS transaction).

    MULTI-TENANT: members are scoped to a gym; email is unique per gym.
    """
    __tablename__ = "members"
    __table_args__ = (
        db.UniqueConstraint("gym_id", "email", name="uq_members_gym_email"),
        db.Index("ix_members_gym_status", "gym_id", "membership_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    gym_id = db.Column(db.Integer, db.ForeignKey("gyms.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    membership_status = db.Column(db.String(16), nullable=False, default=MEMBERSHIP_INACTIVE)
    membership_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    gym = db.relationship("Gym", backref=db.backref("members", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "gym_id": self.gym_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "membership_status": self.membership_status,
            "membership_expires_at": to_utc_z(self.membership_expires_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
