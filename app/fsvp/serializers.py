"""
JSON shapes returned by the API.

Field names are camelCase because the portal UI consumes them verbatim; the
same dicts double as the before/after snapshots stored on audit entries.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.fsvp.models import AuditLog, User
    from app.fsvp.modules.documents.models import DigitalSignature, Document
    from app.fsvp.modules.products.models import Product
    from app.fsvp.modules.vendors.models import Vendor


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def user_to_dict(u: "User") -> dict[str, Any]:
    # never includes password_hash
    return {
        "id": u.id,
        "email": u.email,
        "name": u.name,
        "role": u.role,
        "isEmailVerified": u.is_email_verified,
        "createdAt": iso(u.created_at),
    }


def actor_summary(u: "User | None") -> dict[str, Any] | None:
    if u is None:
        return None
    return {"name": u.name, "email": u.email, "role": u.role}


def vendor_to_dict(v: "Vendor") -> dict[str, Any]:
    return {
        "id": v.id,
        "userId": v.user_id,
        "companyName": v.company_name,
        "country": v.country,
        "address": v.address,
        "phone": v.phone,
        "verificationStatus": v.verification_status,
        "lastSubmissionDate": iso(v.last_submission_date),
        "createdAt": iso(v.created_at),
        "updatedAt": iso(v.updated_at),
    }


def product_to_dict(p: "Product") -> dict[str, Any]:
    return {
        "id": p.id,
        "vendorId": p.vendor_id,
        "skuNumber": p.sku_number,
        "productName": p.product_name,
        "category": p.category,
        "description": p.description,
        "manufacturer": p.manufacturer,
        "countryOfOrigin": p.country_of_origin,
        "ingredientsList": p.ingredients_list,
        "allergenInfo": p.allergen_info,
        "status": p.status,
        "version": p.version,
        "submittedAt": iso(p.submitted_at),
        "reviewedAt": iso(p.reviewed_at),
        "reviewedBy": p.reviewed_by,
        "reviewNotes": p.review_notes,
        "createdAt": iso(p.created_at),
        "updatedAt": iso(p.updated_at),
    }


def document_to_dict(d: "Document", *, signature_count: int | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": d.id,
        "productId": d.product_id,
        "fileName": d.file_name,
        "fileSize": d.file_size,
        "fileType": d.file_type,
        "storageKey": d.storage_key,
        "sha256": d.sha256,
        "version": d.version,
        "uploadedBy": d.uploaded_by,
        "uploadedAt": iso(d.uploaded_at),
    }
    if signature_count is not None:
        out["signatureCount"] = signature_count
        out["isDigitallySigned"] = signature_count > 0
    return out


def signature_to_dict(sig: "DigitalSignature") -> dict[str, Any]:
    return {
        "id": sig.id,
        "productId": sig.product_id,
        "documentId": sig.document_id,
        "signedBy": sig.signed_by,
        "signatureHash": sig.signature_hash,
        "signatureData": sig.signature_data,
        "ipAddress": sig.ip_address,
        "timestamp": iso(sig.timestamp),
    }


def audit_log_to_dict(log: "AuditLog", *, actor: "User | None" = None, include_actor: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": log.id,
        "userId": log.user_id,
        "action": log.action,
        "entityType": log.entity_type,
        "entityId": log.entity_id,
        "description": log.description,
        "changes": log.changes,
        "version": log.version,
        "ipAddress": log.ip_address,
        "requestId": log.request_id,
        "timestamp": iso(log.created_at),
    }
    if include_actor:
        out["user"] = actor_summary(actor)
    return out


def dumps_snapshot(payload: dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, default=str)
