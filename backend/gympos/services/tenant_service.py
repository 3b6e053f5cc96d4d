"""
Multi-Tenant Service: Gym Validation and Scoping Helpers

Every request is scoped to a gym. Gym staff are pinned to the gym of their
session; super admins must name the gym they act on. Ids that belong to
another gym are reported as "not found" so their existence is not leaked.

USAGE:
    from gympos.services.tenant_service import resolve_gym_id

    gym_id = resolve_gym_id(request.args.get("gym_id", type=int))
"""

from flask import g

from ..extensions import db
from ..models import Gym
from gympos.validation import ConflictError, ValidationError
from .wallet_service import provision_wallets


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted or no tenant is known."""


def get_current_gym_id() -> int | None:
    return getattr(g, 'gym_id', None)


def require_gym(gym_id: int) -> Gym:
    gym = db.session.query(Gym).filter_by(id=gym_id).first()
    if not gym:
        raise TenantAccessError("Gym not found")
    if not gym.is_active:
        raise TenantAccessError("Gym is not active")
    return gym


def resolve_gym_id(requested_gym_id: int | None = None) -> int:
    """
    Determine the gym a request operates on.

    - Gym staff: always their session gym; naming another gym is denied.
    - Super admins: must pass requested_gym_id explicitly.
    """
    session_gym_id = get_current_gym_id()

    if session_gym_id is not None:
        if requested_gym_id is not None and requested_gym_id != session_gym_id:
            raise TenantAccessError("Gym not found")
        return session_gym_id

    if requested_gym_id is None:
        raise ValidationError("gym_id required")

    require_gym(requested_gym_id)
    return requested_gym_id


def create_gym(
    name: str,
    code: str | None = None,
    address: str | None = None,
    phone: str | None = None,
    email: str | None = None,
) -> Gym:
    """Register a gym and provision one wallet per payment channel."""
    if code and db.session.query(Gym).filter_by(code=code).first():
        raise ConflictError(f"Gym code {code} already exists")

    gym = Gym(name=name, code=code, address=address, phone=phone, email=email, is_active=True)
    db.session.add(gym)
    db.session.flush()

    provision_wallets(db.session, gym.id)

    db.session.commit()
    return gym


def list_gyms(active_only: bool = False) -> list[Gym]:
    q = db.session.query(Gym)
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(Gym.id).all()
