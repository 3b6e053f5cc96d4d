# Overview: Unauthenticated health check for the database and the session store.

"""
System health endpoint.

GET /api/health runs each check, times it, and reports 503 as soon as one
of them fails, so load balancers can take the instance out of rotation.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Gym, SessionToken, Wallet
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def _check_database() -> dict:
    return {
        "gyms": db.session.query(Gym).count(),
        "wallets": db.session.query(Wallet).count(),
    }


def _check_sessions() -> dict:
    live = db.session.query(SessionToken).filter(
        SessionToken.is_revoked.is_(False),
        SessionToken.expires_at >= utcnow(),
    ).count()
    return {"active_sessions": live}


HEALTH_CHECKS = (
    ("database", _check_database),
    ("session_service", _check_sessions),
)


def run_check(name: str, check) -> dict:
    started = time.perf_counter()
    try:
        details = check()
    except Exception:
        current_app.logger.exception("Health check %s failed", name)
        db.session.rollback()
        result = {"status": "unhealthy", "error": f"{name} unavailable"}
    else:
        result = {"status": "healthy", "details": details}
    result["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return result


@system_bp.get("/api/health")
def health():
    """200 when every check passes, 503 otherwise."""
    started = time.perf_counter()
    checks = {name: run_check(name, check) for name, check in HEALTH_CHECKS}
    healthy = all(check["status"] == "healthy" for check in checks.values())

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "checks": checks,
    }
    return body, 200 if healthy else 503
