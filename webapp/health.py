from flask import Blueprint, current_app

from .extensions import db
from shared.infrastructure.user_directory import SqlAlchemyUserDirectory

# 認証なしのhealth用Blueprint
health_bp = Blueprint("health", __name__)


@health_bp.get("/healthcheck")
def healthcheck():
    """Readiness probe: the user table must be queryable."""
    try:
        SqlAlchemyUserDirectory(db.session).count_users()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Healthcheck failed",
            extra={"event": "health.check", "status": "error"},
        )
        return "ERROR", 500, {"Content-Type": "text/plain; charset=utf-8"}
    return "OK", 200, {"Content-Type": "text/plain; charset=utf-8"}
