from __future__ import annotations

from flask import Blueprint, request

from app.fsvp.db import db_session
from app.fsvp.modules.products.service import (
    create_product,
    get_product,
    list_own_products,
    list_pending_products,
    list_products,
    review_history,
    review_product,
    submit_product,
    update_product,
)
from app.fsvp.rbac import current_user, login_required
from app.fsvp.serializers import audit_log_to_dict, product_to_dict
from app.fsvp.utils import json_body

bp = Blueprint("products", __name__)


# ---------- Reads ----------
@bp.get("/products")
@login_required
def products_list():
    s = db_session()
    status = (request.args.get("status") or "").strip() or None
    products = list_products(s, current_user(), status)
    return [product_to_dict(p) for p in products]


@bp.get("/products/my")
@login_required
def products_my():
    s = db_session()
    return [product_to_dict(p) for p in list_own_products(s, current_user())]


@bp.get("/products/pending")
@login_required
def products_pending():
    s = db_session()
    return [product_to_dict(p) for p in list_pending_products(s, current_user())]


@bp.get("/products/<int:product_id>")
@login_required
def product_detail(product_id: int):
    s = db_session()
    return product_to_dict(get_product(s, product_id, current_user()))


@bp.get("/products/<int:product_id>/review-history")
@login_required
def product_review_history(product_id: int):
    s = db_session()
    logs = review_history(s, product_id, current_user())
    return [audit_log_to_dict(log) for log in logs]


# ---------- Lifecycle ----------
@bp.post("/products")
@login_required
def product_create():
    s = db_session()
    product = create_product(s, json_body(), current_user())
    s.commit()
    return product_to_dict(product), 201


@bp.put("/products/<int:product_id>")
@login_required
def product_update(product_id: int):
    s = db_session()
    product = update_product(s, product_id, json_body(), current_user())
    s.commit()
    return product_to_dict(product)


@bp.post("/products/<int:product_id>/submit")
@login_required
def product_submit(product_id: int):
    s = db_session()
    product = submit_product(s, product_id, current_user())
    s.commit()
    return product_to_dict(product)


@bp.post("/products/<int:product_id>/review")
@login_required
def product_review(product_id: int):
    s = db_session()
    product = review_product(s, product_id, json_body(), current_user())
    s.commit()
    return product_to_dict(product)
