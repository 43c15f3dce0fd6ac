from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.fsvp.audit import record
from app.fsvp.constants import ENTITY_VENDOR, VERIFICATION_STATUSES
from app.fsvp.errors import ConflictError, NotFoundError, ValidationError
from app.fsvp.rbac import require_capability, require_ownership, user_has_capability
from app.fsvp.serializers import vendor_to_dict

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fsvp.models import User
    from app.fsvp.modules.vendors.models import Vendor


# payload key -> model attribute
_PROFILE_FIELDS = {
    "companyName": "company_name",
    "country": "country",
    "address": "address",
    "phone": "phone",
}


def vendor_for_user(s: "Session", user: "User") -> "Vendor | None":
    from app.fsvp.modules.vendors.models import Vendor

    return s.scalars(select(Vendor).where(Vendor.user_id == user.id)).one_or_none()


def get_vendor_or_404(s: "Session", vendor_id: int) -> "Vendor":
    from app.fsvp.modules.vendors.models import Vendor

    v = s.get(Vendor, vendor_id)
    if not v:
        raise NotFoundError("Vendor not found")
    return v


def _clean(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Vendor fields must be strings")
    return value.strip()


def create_default_profile(s: "Session", user: "User") -> "Vendor":
    """Profile created alongside a vendor registration."""
    from app.fsvp.modules.vendors.models import Vendor

    now = datetime.utcnow()
    vendor = Vendor(
        user_id=user.id,
        company_name=user.name,
        country="",
        verification_status="unverified",
        created_at=now,
        updated_at=now,
    )
    s.add(vendor)
    s.flush()

    record(
        s,
        actor=user,
        action="create",
        entity_type=ENTITY_VENDOR,
        entity_id=vendor.id,
        description=f"Vendor profile created for {user.email}",
    )
    return vendor


def create_profile(s: "Session", payload: dict, user: "User") -> "Vendor":
    from app.fsvp.modules.vendors.models import Vendor

    require_capability(user, "vendor.create_profile", "Only vendors can create vendor profiles")
    if vendor_for_user(s, user):
        raise ConflictError("Vendor profile already exists")

    company_name = _clean(payload.get("companyName")) or ""
    country = _clean(payload.get("country")) or ""
    errors = []
    if not company_name:
        errors.append("companyName is required")
    if not country:
        errors.append("country is required")
    if errors:
        raise ValidationError("; ".join(errors))

    now = datetime.utcnow()
    vendor = Vendor(
        user_id=user.id,
        company_name=company_name,
        country=country,
        address=_clean(payload.get("address")) or None,
        phone=_clean(payload.get("phone")) or None,
        verification_status="unverified",
        created_at=now,
        updated_at=now,
    )
    s.add(vendor)
    s.flush()

    record(
        s,
        actor=user,
        action="create",
        entity_type=ENTITY_VENDOR,
        entity_id=vendor.id,
        description=f"Vendor profile created for {vendor.company_name}",
    )
    return vendor


def update_profile(s: "Session", vendor_id: int, payload: dict, user: "User") -> "Vendor":
    """
    Owners edit their contact fields; distributor/auditor/admin may also move
    verificationStatus. A vendor-supplied verificationStatus is dropped.
    """
    scope = require_capability(user, "vendor.edit", "Not authorized to update this vendor profile")
    vendor = get_vendor_or_404(s, vendor_id)
    require_ownership(user, scope, vendor.user_id == user.id, "Not authorized to update this vendor profile")

    before = vendor_to_dict(vendor)

    updates: dict[str, object] = {}
    for key, attr in _PROFILE_FIELDS.items():
        if key in payload:
            value = _clean(payload.get(key))
            if attr in ("company_name", "country"):
                if not value:
                    raise ValidationError(f"{key} must not be empty")
                updates[attr] = value
            else:
                updates[attr] = value or None

    if "verificationStatus" in payload:
        if user_has_capability(user, "vendor.set_verification"):
            status = _clean(payload.get("verificationStatus"))
            if status not in VERIFICATION_STATUSES:
                raise ValidationError(
                    f"Invalid verificationStatus. Must be one of: {', '.join(VERIFICATION_STATUSES)}"
                )
            updates["verification_status"] = status

    for attr, value in updates.items():
        setattr(vendor, attr, value)
    vendor.updated_at = datetime.utcnow()
    s.flush()

    record(
        s,
        actor=user,
        action="update",
        entity_type=ENTITY_VENDOR,
        entity_id=vendor.id,
        description=f"Vendor profile updated for {vendor.company_name}",
        before=before,
        after=vendor_to_dict(vendor),
    )
    return vendor


def list_vendors(s: "Session", user: "User") -> list["Vendor"]:
    from app.fsvp.modules.vendors.models import Vendor

    require_capability(user, "vendor.view_all", "Not authorized to view all vendors")
    return list(s.scalars(select(Vendor).order_by(Vendor.created_at.desc(), Vendor.id.desc())))


def get_vendor(s: "Session", vendor_id: int, user: "User") -> "Vendor":
    require_capability(user, "vendor.view_all", "Not authorized to view vendor details")
    return get_vendor_or_404(s, vendor_id)


def get_own_vendor(s: "Session", user: "User") -> "Vendor":
    require_capability(user, "vendor.view_own", "Only vendors have a vendor profile")
    v = vendor_for_user(s, user)
    if not v:
        raise NotFoundError("Vendor profile not found")
    return v


def stamp_submission(vendor: "Vendor", when: datetime | None = None) -> None:
    """Product create/update/submit touches lastSubmissionDate; covered by the product's audit entry."""
    when = when or datetime.utcnow()
    vendor.last_submission_date = when
    vendor.updated_at = when
