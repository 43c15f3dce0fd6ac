from __future__ import annotations

from flask import Blueprint, request

from app.fsvp.audit import enrich
from app.fsvp.db import db_session
from app.fsvp.modules.audit_trail.service import entity_trail, product_trail, search_logs, user_trail
from app.fsvp.rbac import current_user, login_required

bp = Blueprint("audit_trail", __name__)


@bp.get("/audit/logs")
@login_required
def audit_logs():
    s = db_session()
    logs, total, filters = search_logs(s, current_user(), request.args)
    return {
        "logs": enrich(s, logs),
        "total": total,
        "limit": filters.limit,
        "offset": filters.offset,
    }


@bp.get("/audit/logs/entity/<entity_type>/<entity_id>")
@login_required
def audit_entity_logs(entity_type: str, entity_id: str):
    s = db_session()
    return enrich(s, entity_trail(s, current_user(), entity_type, entity_id))


@bp.get("/audit/logs/user/<int:user_id>")
@login_required
def audit_user_logs(user_id: int):
    s = db_session()
    return enrich(s, user_trail(s, current_user(), user_id))


@bp.get("/audit/product/<int:product_id>")
@login_required
def audit_product_logs(product_id: int):
    s = db_session()
    return enrich(s, product_trail(s, current_user(), product_id))
