# backend/rims/routes/system.py
"""
System health and version endpoints.

The ledger client probes /api/health before trusting the store; a non-200
answer makes it fall back to its local cache.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import COLLECTIONS
from rims.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity by counting rows in every collection.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        counts = {
            name: db.session.query(model).count()
            for name, model in COLLECTIONS.items()
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Store availability check.

    Returns:
    - 200 {"status": "ok", "database": "<dialect>"}: store is usable
    - 503: database unreachable
    """
    database_health = check_database_health()
    ok = database_health["status"] == "healthy"

    response = {
        "status": "ok" if ok else "unavailable",
        "database": db.engine.dialect.name,
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }
    return response, 200 if ok else 503


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
