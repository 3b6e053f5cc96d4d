# Overview: Service-layer operations for gym members; gym-scoped registration and lookup.

from __future__ import annotations

from ..extensions import db
from ..models import Member
from ..models.members import VALID_MEMBERSHIP_STATUSES
from gympos.pagination import paginate
from gympos.validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload


class MemberError(Exception):
    code = "MEMBER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class MemberNotFound(MemberError):
    code = "MEMBER_NOT_FOUND"
    status_code = 404


MEMBER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "membership_status", "membership_expires_at"},
    required_on_create={"name"},
)


def create_member(gym_id: int, payload: dict) -> Member:
    patch = validate_payload(model=Member, payload=payload, policy=MEMBER_POLICY, partial=False)

    status = patch.get("membership_status")
    if status is not None and status not in VALID_MEMBERSHIP_STATUSES:
        raise ValidationError(f"membership_status must be one of {', '.join(VALID_MEMBERSHIP_STATUSES)}")

    email = patch.get("email")
    if email and db.session.query(Member).filter_by(gym_id=gym_id, email=email).first():
        raise ConflictError("Email already exists")

    member = Member(gym_id=gym_id, **patch)
    db.session.add(member)
    db.session.commit()
    return member


def get_member(gym_id: int, member_id: int) -> Member:
    member = db.session.query(Member).filter_by(id=member_id, gym_id=gym_id).first()
    if not member:
        raise MemberNotFound("Member not found", details={"member_id": member_id})
    return member


def list_members(
    gym_id: int,
    *,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    membership_status: str | None = None,
) -> dict:
    q = db.session.query(Member).filter(Member.gym_id == gym_id)
    if search:
        pattern = f"%{search}%"
        q = q.filter(db.or_(
            Member.name.ilike(pattern),
            Member.email.ilike(pattern),
            Member.phone.ilike(pattern),
        ))
    if membership_status:
        q = q.filter(Member.membership_status == membership_status)
    q = q.order_by(Member.created_at.desc(), Member.id.desc())
    return paginate(q, page, limit)
