# Overview: Service-layer operations for session tokens; resolves the tenant context of a request.

"""
Session Token Service with Gym Tenancy

Bearer tokens are random, stored only as SHA-256 hashes, time-limited and
revocable. Each session captures the gym_id of its user when it is issued;
that gym becomes the tenant context of every request made with the token.

Tokens are provisioned by operators (see `flask users issue-token`).
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..models.auth import ROLE_SUPER_ADMIN
from gympos.time_utils import utcnow


SESSION_IDLE_TIMEOUT = timedelta(hours=2)


class SessionError(Exception):
    """Raised when a session cannot be issued."""


@dataclass
class SessionContext:
    """Tenant context resolved from a valid session."""
    user: User
    session: SessionToken
    gym_id: int | None  # None only for super admins


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(user_id: int, ttl: timedelta | None = None) -> tuple[SessionToken, str]:
    """
    Issue a session for a user.

    Returns (session_record, plaintext_token). Only the hash is stored.

    Raises SessionError if the user is unknown, inactive, or is gym staff
    without a gym.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise SessionError("User not found")
    if not user.is_active:
        raise SessionError("User is not active")
    if user.gym_id is None and user.role != ROLE_SUPER_ADMIN:
        raise SessionError("User must belong to a gym")
    if user.gym is not None and not user.gym.is_active:
        raise SessionError("Gym is not active")

    if ttl is None:
        ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        gym_id=user.gym_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a bearer token.

    Returns None if the token is unknown, expired, revoked, idle for too
    long, or its user or gym has been deactivated. Updates last_used_at.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    if session.gym_id is not None and (session.gym is None or not session.gym.is_active):
        _revoke(session, "Gym deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, gym_id=session.gym_id)


def revoke_session(token: str, reason: str = "Revoked") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True
