from __future__ import annotations

from flask import Blueprint

from app.fsvp.db import db_session
from app.fsvp.modules.vendors.service import (
    create_profile,
    get_own_vendor,
    get_vendor,
    list_vendors,
    update_profile,
)
from app.fsvp.rbac import current_user, login_required
from app.fsvp.serializers import vendor_to_dict
from app.fsvp.utils import json_body

bp = Blueprint("vendors", __name__)


@bp.post("/vendors")
@login_required
def vendor_create():
    s = db_session()
    vendor = create_profile(s, json_body(), current_user())
    s.commit()
    return vendor_to_dict(vendor), 201


@bp.get("/vendors/me")
@login_required
def vendor_me():
    s = db_session()
    return vendor_to_dict(get_own_vendor(s, current_user()))


@bp.get("/vendors")
@login_required
def vendors_list():
    s = db_session()
    return [vendor_to_dict(v) for v in list_vendors(s, current_user())]


@bp.get("/vendors/<int:vendor_id>")
@login_required
def vendor_detail(vendor_id: int):
    s = db_session()
    return vendor_to_dict(get_vendor(s, vendor_id, current_user()))


@bp.put("/vendors/<int:vendor_id>")
@login_required
def vendor_update(vendor_id: int):
    s = db_session()
    vendor = update_profile(s, vendor_id, json_body(), current_user())
    s.commit()
    return vendor_to_dict(vendor)
