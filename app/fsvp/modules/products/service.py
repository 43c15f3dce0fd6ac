"""
Product lifecycle engine.

    draft --submit--> pending --review(approve)--> approved
                              --review(reject)---> rejected

There is no edge back into draft or pending; approved and rejected are terminal.
Every transition and every edit is a conditional UPDATE keyed on the status
and version the caller read, so two racing requests cannot both commit.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from app.fsvp.audit import logs_for_entity, record
from app.fsvp.constants import (
    DEFAULT_VERSION,
    ENTITY_PRODUCT,
    PRODUCT_STATUSES,
    STATUS_APPROVED,
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_REJECTED,
)
from app.fsvp.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.fsvp.rbac import OWN, require_capability, require_ownership
from app.fsvp.serializers import product_to_dict

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fsvp.models import AuditLog, User
    from app.fsvp.modules.products.models import Product

logger = logging.getLogger(__name__)

TRANSITIONS = frozenset(
    {
        (STATUS_DRAFT, STATUS_PENDING),
        (STATUS_PENDING, STATUS_APPROVED),
        (STATUS_PENDING, STATUS_REJECTED),
    }
)

REVIEW_ACTIONS = {"approve": STATUS_APPROVED, "reject": STATUS_REJECTED}

# payload key -> model attribute
REQUIRED_FIELDS = {
    "skuNumber": "sku_number",
    "productName": "product_name",
    "category": "category",
    "description": "description",
    "manufacturer": "manufacturer",
    "countryOfOrigin": "country_of_origin",
}
OPTIONAL_FIELDS = {
    "ingredientsList": "ingredients_list",
    "allergenInfo": "allergen_info",
}
# Written only by review(); vendors have these stripped from edits.
REVIEW_FIELDS = ("status", "reviewedBy", "reviewedAt", "reviewNotes")

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")


def can_transition(from_status: str, to_status: str) -> bool:
    return (from_status, to_status) in TRANSITIONS


def next_version(current: str | None, *, product_id: int | None = None) -> str:
    """
    Bump the minor component: v1.0.0 -> v1.1.0, "2.3.4" -> v2.4.4.

    A version string that does not parse is reset to v1.0.0. That discards the
    old value, so the reset is logged.
    """
    m = _VERSION_RE.match((current or "").strip())
    if not m:
        logger.warning("Unparseable version %r on product %s; resetting to %s", current, product_id, DEFAULT_VERSION)
        return DEFAULT_VERSION
    major, minor, patch = (int(x) for x in m.groups())
    return f"v{major}.{minor + 1}.{patch}"


def _clean_text(key: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip()


def validate_product_payload(payload: dict, *, partial: bool) -> dict[str, Any]:
    """Map a camelCase payload onto model attributes. Unknown keys are ignored."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    values: dict[str, Any] = {}
    errors: list[str] = []
    for key, attr in REQUIRED_FIELDS.items():
        if key not in payload:
            if not partial:
                errors.append(f"{key} is required")
            continue
        value = _clean_text(key, payload.get(key))
        if not value:
            errors.append(f"{key} must not be empty")
            continue
        values[attr] = value
    for key, attr in OPTIONAL_FIELDS.items():
        if key in payload:
            values[attr] = _clean_text(key, payload.get(key)) or None
    if errors:
        raise ValidationError("; ".join(errors))
    return values


def get_product_or_404(s: "Session", product_id: int) -> "Product":
    from app.fsvp.modules.products.models import Product

    p = s.get(Product, product_id)
    if not p:
        raise NotFoundError("Product not found")
    return p


def _load_for_update(s: "Session", product_id: int) -> "Product":
    from app.fsvp.modules.products.models import Product

    stmt = (
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    p = s.scalars(stmt).one_or_none()
    if not p:
        raise NotFoundError("Product not found")
    return p


def is_owner(user: "User", product: "Product") -> bool:
    return product.vendor is not None and product.vendor.user_id == user.id


def _conditional_update(
    s: "Session",
    product: "Product",
    *,
    expected_status: str,
    expected_version: str,
    values: dict[str, Any],
) -> "Product":
    """
    UPDATE products SET ... WHERE id = :id AND status = :expected AND version = :expected.

    Zero affected rows means another request committed first.
    """
    from app.fsvp.modules.products.models import Product

    stmt = (
        update(Product)
        .where(
            Product.id == product.id,
            Product.status == expected_status,
            Product.version == expected_version,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = s.execute(stmt)
    except IntegrityError as e:
        raise ConflictError("SKU number already exists") from e
    if result.rowcount != 1:
        logger.info("Conditional update lost race on product %s (expected %s/%s)", product.id, expected_status, expected_version)
        raise ConflictError("Product was modified concurrently; reload and try again")
    s.refresh(product)
    return product


def _sku_taken(s: "Session", sku_number: str, *, exclude_id: int | None = None) -> bool:
    from app.fsvp.modules.products.models import Product

    stmt = select(Product.id).where(Product.sku_number == sku_number)
    if exclude_id is not None:
        stmt = stmt.where(Product.id != exclude_id)
    return s.scalars(stmt).first() is not None


def create_product(s: "Session", payload: dict, user: "User") -> "Product":
    """New SKU in draft at v1.0.0. Vendor role with a vendor profile only."""
    from app.fsvp.modules.products.models import Product
    from app.fsvp.modules.vendors.service import stamp_submission, vendor_for_user

    require_capability(user, "product.create", "Only vendors can create products")
    vendor = vendor_for_user(s, user)
    if not vendor:
        raise ForbiddenError("Vendor profile required to create products")

    values = validate_product_payload(payload, partial=False)
    if _sku_taken(s, values["sku_number"]):
        raise ConflictError("SKU number already exists")

    now = datetime.utcnow()
    product = Product(
        vendor_id=vendor.id,
        status=STATUS_DRAFT,
        version=DEFAULT_VERSION,
        created_at=now,
        updated_at=now,
        **values,
    )
    s.add(product)
    try:
        s.flush()
    except IntegrityError as e:
        raise ConflictError("SKU number already exists") from e

    stamp_submission(vendor, now)
    record(
        s,
        actor=user,
        action="create",
        entity_type=ENTITY_PRODUCT,
        entity_id=product.id,
        description=f"Product {product.sku_number} created",
        version=product.version,
    )
    logger.info("product %s (%s) created by user %s", product.id, product.sku_number, user.id)
    return product


def update_product(s: "Session", product_id: int, payload: dict, user: "User") -> "Product":
    """
    Edit fields and bump the minor version.

    Owning vendors may edit only while draft and never touch review fields.
    Distributor/auditor/admin may edit in any status but status itself only
    moves through submit/review.
    """
    from app.fsvp.modules.vendors.service import stamp_submission

    scope = require_capability(user, "product.edit", "Not authorized to update this product")
    product = _load_for_update(s, product_id)
    require_ownership(user, scope, is_owner(user, product), "Not authorized to update this product")

    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    payload = dict(payload)
    review_notes_update: dict[str, Any] = {}
    if scope == OWN:
        if product.status != STATUS_DRAFT:
            raise ForbiddenError("Can only update products in draft status")
        for key in REVIEW_FIELDS:
            payload.pop(key, None)
    else:
        for key in ("status", "reviewedBy", "reviewedAt"):
            if key in payload:
                raise ValidationError(f"{key} can only change through submit or review")
        if "reviewNotes" in payload:
            review_notes_update["review_notes"] = _clean_text("reviewNotes", payload.get("reviewNotes")) or None

    values = validate_product_payload(payload, partial=True)
    values.update(review_notes_update)

    new_sku = values.get("sku_number")
    if new_sku and new_sku != product.sku_number and _sku_taken(s, new_sku, exclude_id=product.id):
        raise ConflictError("SKU number already exists")

    before = product_to_dict(product)
    old_status, old_version = product.status, product.version
    new_version = next_version(old_version, product_id=product.id)
    now = datetime.utcnow()

    _conditional_update(
        s,
        product,
        expected_status=old_status,
        expected_version=old_version,
        values={**values, "version": new_version, "updated_at": now},
    )
    stamp_submission(product.vendor, now)

    record(
        s,
        actor=user,
        action="update",
        entity_type=ENTITY_PRODUCT,
        entity_id=product.id,
        description=f"Product {product.sku_number} updated to {new_version}",
        before=before,
        after=product_to_dict(product),
        version=new_version,
    )
    logger.info("product %s updated %s -> %s by user %s", product.id, old_version, new_version, user.id)
    return product


def submit_product(s: "Session", product_id: int, user: "User") -> "Product":
    """draft -> pending, owning vendor only."""
    from app.fsvp.modules.vendors.service import stamp_submission

    scope = require_capability(user, "product.submit", "Only vendors can submit products")
    product = _load_for_update(s, product_id)
    require_ownership(user, scope, is_owner(user, product), "Not authorized to submit this product")

    if not can_transition(product.status, STATUS_PENDING):
        raise ValidationError("Only draft products can be submitted for review")

    before = product_to_dict(product)
    now = datetime.utcnow()
    _conditional_update(
        s,
        product,
        expected_status=STATUS_DRAFT,
        expected_version=product.version,
        values={"status": STATUS_PENDING, "submitted_at": now, "updated_at": now},
    )
    stamp_submission(product.vendor, now)

    record(
        s,
        actor=user,
        action="update",
        entity_type=ENTITY_PRODUCT,
        entity_id=product.id,
        description=f"Product {product.sku_number} submitted for review",
        before=before,
        after=product_to_dict(product),
        version=product.version,
    )
    logger.info("product %s submitted by user %s", product.id, user.id)
    return product


def validate_review_payload(payload: dict) -> tuple[str, str | None]:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    action = payload.get("action")
    if action not in REVIEW_ACTIONS:
        raise ValidationError("action must be one of: approve, reject")
    notes = _clean_text("notes", payload.get("notes")) or None
    if action == "reject" and not notes:
        raise ValidationError("Notes are required when rejecting a product")
    return action, notes


def review_product(s: "Session", product_id: int, payload: dict, user: "User") -> "Product":
    """pending -> approved | rejected, distributor/auditor only."""
    require_capability(user, "product.review", "Not authorized to review products")
    product = _load_for_update(s, product_id)

    if product.status != STATUS_PENDING:
        raise ConflictError("Only pending products can be reviewed")

    action, notes = validate_review_payload(payload)
    new_status = REVIEW_ACTIONS[action]

    before = product_to_dict(product)
    now = datetime.utcnow()
    _conditional_update(
        s,
        product,
        expected_status=STATUS_PENDING,
        expected_version=product.version,
        values={
            "status": new_status,
            "reviewed_at": now,
            "reviewed_by": user.id,
            "review_notes": notes,
            "updated_at": now,
        },
    )

    description = f"Product {product.sku_number} {new_status} by {user.name} ({user.role})"
    if notes:
        description += f": {notes}"
    record(
        s,
        actor=user,
        action=action,
        entity_type=ENTITY_PRODUCT,
        entity_id=product.id,
        description=description,
        before=before,
        after=product_to_dict(product),
        version=product.version,
    )
    logger.info("product %s %s by user %s", product.id, new_status, user.id)
    return product


# ---------- Reads ----------
def get_product(s: "Session", product_id: int, user: "User") -> "Product":
    scope = require_capability(user, "product.view", "Not authorized to view products")
    product = get_product_or_404(s, product_id)
    require_ownership(user, scope, is_owner(user, product), "Not authorized to view this product")
    return product


def list_products(s: "Session", user: "User", status: str | None = None) -> list["Product"]:
    from app.fsvp.modules.products.models import Product

    require_capability(user, "product.list_all", "Not authorized to view all products")
    stmt = select(Product)
    if status:
        if status not in PRODUCT_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(PRODUCT_STATUSES)}")
        stmt = stmt.where(Product.status == status)
    return list(s.scalars(stmt.order_by(Product.created_at.desc(), Product.id.desc())))


def list_own_products(s: "Session", user: "User") -> list["Product"]:
    from app.fsvp.modules.products.models import Product
    from app.fsvp.modules.vendors.service import vendor_for_user

    require_capability(user, "product.list_own", "Only vendors can view their products")
    vendor = vendor_for_user(s, user)
    if not vendor:
        raise NotFoundError("Vendor profile not found")
    stmt = select(Product).where(Product.vendor_id == vendor.id)
    return list(s.scalars(stmt.order_by(Product.created_at.desc(), Product.id.desc())))


def list_pending_products(s: "Session", user: "User") -> list["Product"]:
    from app.fsvp.modules.products.models import Product

    require_capability(user, "product.list_pending", "Not authorized to view pending products")
    stmt = select(Product).where(Product.status == STATUS_PENDING)
    return list(s.scalars(stmt.order_by(Product.created_at.desc(), Product.id.desc())))


def review_history(s: "Session", product_id: int, user: "User") -> list["AuditLog"]:
    scope = require_capability(user, "product.review_history", "Not authorized to view review history")
    product = get_product_or_404(s, product_id)
    require_ownership(user, scope, is_owner(user, product), "Not authorized to view review history for this product")
    return [log for log in logs_for_entity(s, ENTITY_PRODUCT, product.id) if log.action in REVIEW_ACTIONS]
