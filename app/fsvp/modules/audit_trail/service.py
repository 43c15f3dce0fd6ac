from __future__ import annotations

from typing import TYPE_CHECKING, Any

from app.fsvp.audit import AuditFilters, list_logs, logs_for_entity, logs_for_product, logs_for_user, parse_filters
from app.fsvp.constants import ENTITY_PRODUCT, ENTITY_VENDOR
from app.fsvp.errors import ForbiddenError, ValidationError
from app.fsvp.modules.products.service import get_product_or_404, is_owner
from app.fsvp.rbac import OWN, require_capability, require_ownership

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fsvp.models import AuditLog, User


def search_logs(s: "Session", user: "User", args: dict[str, Any]) -> tuple[list["AuditLog"], int, AuditFilters]:
    require_capability(user, "audit.view_all", "Not authorized to view audit logs")
    filters = parse_filters(args)
    logs, total = list_logs(s, filters)
    return logs, total, filters


def entity_trail(s: "Session", user: "User", entity_type: str, entity_id: str) -> list["AuditLog"]:
    """
    Vendors may read the trail of their own product or vendor profile only;
    staff roles read any entity.
    """
    from app.fsvp.modules.vendors.service import get_vendor_or_404

    scope = require_capability(user, "audit.view_entity", "Not authorized to view audit logs")
    if scope == OWN:
        if entity_type == ENTITY_PRODUCT:
            product = get_product_or_404(s, _int_id(entity_id))
            require_ownership(user, scope, is_owner(user, product), "Not authorized to view audit logs for this product")
        elif entity_type == ENTITY_VENDOR:
            vendor = get_vendor_or_404(s, _int_id(entity_id))
            require_ownership(user, scope, vendor.user_id == user.id, "Not authorized to view audit logs for this vendor")
        else:
            raise ForbiddenError("Not authorized to view audit logs for this entity")
    return logs_for_entity(s, entity_type, entity_id)


def user_trail(s: "Session", user: "User", user_id: int) -> list["AuditLog"]:
    scope = require_capability(user, "audit.view_user", "Not authorized to view audit logs")
    require_ownership(user, scope, user_id == user.id, "Not authorized to view audit logs for this user")
    return logs_for_user(s, user_id)


def product_trail(s: "Session", user: "User", product_id: int) -> list["AuditLog"]:
    scope = require_capability(user, "audit.view_product", "Not authorized to view audit logs")
    product = get_product_or_404(s, product_id)
    require_ownership(user, scope, is_owner(user, product), "Not authorized to view audit logs for this product")
    return logs_for_product(s, product.id)


def _int_id(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("entityId must be an integer")
