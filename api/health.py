from flask import Blueprint
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging

from models import storage

from . import API_VERSION as VERSION

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
    """
    return {"status": "ok", "version": VERSION}, 200


@bp.get("/health/ready")
def ready():
    """
    Readiness check: the account store answers a trivial query
    ---
    tags:
      - Health
    responses:
      200:
        description: Store reachable
      503:
        description: Store unavailable
    """
    try:
        storage.get_session().execute(text("SELECT 1"))
    except SQLAlchemyError:
        logging.exception("Readiness check failed")
        storage.rollback()
        return {"status": "unavailable", "version": VERSION}, 503
    return {"status": "ok", "version": VERSION, "database": "ok"}, 200
