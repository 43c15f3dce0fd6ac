"""
Central constants for the FSVP compliance portal.
"""
from __future__ import annotations

# User roles (immutable after registration)
ROLE_VENDOR = "vendor"
ROLE_DISTRIBUTOR = "distributor"
ROLE_AUDITOR = "auditor"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_VENDOR, ROLE_DISTRIBUTOR, ROLE_AUDITOR, ROLE_ADMIN)

# Product compliance status: draft -> pending -> approved | rejected
STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
PRODUCT_STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

VERIFICATION_STATUSES = ("unverified", "pending", "verified")

DEFAULT_VERSION = "v1.0.0"

# Audit log vocabulary
AUDIT_ACTIONS = frozenset({"create", "update", "upload", "approve", "reject", "sign", "edit", "delete"})
ENTITY_USER = "user"
ENTITY_VENDOR = "vendor"
ENTITY_PRODUCT = "product"
ENTITY_DOCUMENT = "document"
ENTITY_SIGNATURE = "signature"

AUDIT_DEFAULT_LIMIT = 100
AUDIT_MAX_LIMIT = 500

# Accepted compliance document uploads: extension -> MIME type
ALLOWED_UPLOAD_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
