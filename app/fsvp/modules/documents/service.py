from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import time
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from werkzeug.utils import secure_filename

from app.fsvp.audit import record
from app.fsvp.constants import ALLOWED_UPLOAD_TYPES, ENTITY_DOCUMENT, ENTITY_SIGNATURE
from app.fsvp.errors import NotFoundError, ValidationError
from app.fsvp.modules.products.service import get_product_or_404, is_owner
from app.fsvp.rbac import require_capability, require_ownership
from app.fsvp.storage import StorageError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.fsvp.models import User
    from app.fsvp.modules.documents.models import DigitalSignature, Document
    from app.fsvp.storage import Storage

logger = logging.getLogger(__name__)


def build_document_storage_key(product_id: int, filename: str, epoch_ms: int | None = None) -> str:
    """documents/<productId>/<epoch-ms>-<filename>"""
    if epoch_ms is None:
        epoch_ms = int(time.time() * 1000)
    safe_filename = secure_filename(filename) or "document.bin"
    return f"documents/{product_id}/{epoch_ms}-{safe_filename}"


def display_filename(filename: str) -> str:
    """The uploaded name as the user sent it, minus any client-side directory part."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name[:255] or "document.bin"


def discard_blob(storage: "Storage", key: str) -> None:
    """Best-effort removal of a stored object whose metadata never committed."""
    try:
        storage.delete(key)
    except Exception:
        logger.exception("Could not remove orphaned stored object %s", key)


def file_digest_and_bytes(file_bytes: bytes) -> tuple[str, int]:
    h = hashlib.sha256()
    h.update(file_bytes)
    return (h.hexdigest(), len(file_bytes))


def validate_upload(filename: str | None, content_type: str | None, size: int, max_bytes: int) -> str:
    """Returns the canonical MIME type for the file or raises ValidationError."""
    if not filename:
        raise ValidationError("No file uploaded")
    ext = os.path.splitext(filename)[1].lower()
    expected = ALLOWED_UPLOAD_TYPES.get(ext)
    mime = (content_type or "").split(";")[0].strip().lower()
    if expected is None or mime != expected:
        raise ValidationError("Invalid file type. Only PDF, DOCX, and XLSX files are allowed.")
    if size <= 0:
        raise ValidationError("Uploaded file is empty")
    if size > max_bytes:
        raise ValidationError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    return expected


def signature_timestamp(when: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-03-01T12:00:00.123Z."""
    return when.isoformat(timespec="milliseconds") + "Z"


def compute_signature_hash(file_bytes: bytes, timestamp: str, actor_id: int) -> str:
    """SHA-256 over base64(file) + timestamp + actor id, hex encoded."""
    payload = base64.b64encode(file_bytes).decode("ascii") + timestamp + str(actor_id)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def get_document_or_404(s: "Session", document_id: int) -> "Document":
    from app.fsvp.modules.documents.models import Document

    d = s.get(Document, document_id)
    if not d:
        raise NotFoundError("Document not found")
    return d


def upload_document(
    s: "Session",
    product_id: int,
    file_bytes: bytes,
    filename: str,
    content_type: str | None,
    user: "User",
    *,
    storage: "Storage",
    max_bytes: int,
) -> "Document":
    """Store the file and record its metadata against the product's current version."""
    from app.fsvp.modules.documents.models import Document

    scope = require_capability(user, "document.upload", "Only vendors can upload documents")
    product = get_product_or_404(s, product_id)
    require_ownership(user, scope, is_owner(user, product), "Not authorized to upload documents for this product")

    mime = validate_upload(filename, content_type, len(file_bytes), max_bytes)
    sha256, size_bytes = file_digest_and_bytes(file_bytes)
    storage_key = build_document_storage_key(product.id, filename)

    storage.put_bytes(storage_key, file_bytes, content_type=mime)
    try:
        now = datetime.utcnow()
        doc = Document(
            product_id=product.id,
            file_name=display_filename(filename),
            file_size=size_bytes,
            file_type=mime,
            storage_key=storage_key,
            sha256=sha256,
            version=product.version,
            uploaded_by=user.id,
            uploaded_at=now,
        )
        s.add(doc)
        product.updated_at = now
        s.flush()

        record(
            s,
            actor=user,
            action="upload",
            entity_type=ENTITY_DOCUMENT,
            entity_id=doc.id,
            description=f"Document {doc.file_name} uploaded for product {product.sku_number}",
            version=doc.version,
        )
        s.flush()
    except Exception:
        discard_blob(storage, storage_key)
        raise

    logger.info("document %s uploaded for product %s by user %s", doc.id, product.id, user.id)
    return doc


def read_document_bytes(storage: "Storage", doc: "Document") -> bytes:
    try:
        return storage.read_bytes(doc.storage_key)
    except StorageError as e:
        logger.error("document %s: stored object %s missing", doc.id, doc.storage_key)
        raise NotFoundError("Document file not found in storage") from e


def get_document(s: "Session", document_id: int, user: "User") -> "Document":
    scope = require_capability(user, "document.view", "Not authorized to view documents")
    doc = get_document_or_404(s, document_id)
    require_ownership(user, scope, is_owner(user, doc.product), "Not authorized to access this document")
    return doc


def sign_document(
    s: "Session",
    document_id: int,
    user: "User",
    *,
    storage: "Storage",
    ip_address: str | None = None,
) -> "DigitalSignature":
    """
    Append a signature over the document's stored bytes.

    The Document row is not touched; a document may carry any number of
    signatures.
    """
    from app.fsvp.modules.documents.models import DigitalSignature

    scope = require_capability(user, "document.sign", "Not authorized to sign documents")
    doc = get_document_or_404(s, document_id)
    require_ownership(user, scope, is_owner(user, doc.product), "Not authorized to sign this document")

    file_bytes = read_document_bytes(storage, doc)
    now = datetime.utcnow()
    ts = signature_timestamp(now)
    signature_data = {
        "timestamp": ts,
        "actorId": user.id,
        "actorName": user.name,
        "actorRole": user.role,
        "documentId": doc.id,
        "fileName": doc.file_name,
    }

    sig = DigitalSignature(
        product_id=doc.product_id,
        document_id=doc.id,
        signed_by=user.id,
        signature_hash=compute_signature_hash(file_bytes, ts, user.id),
        signature_data=json.dumps(signature_data),
        ip_address=ip_address,
        timestamp=now,
    )
    s.add(sig)
    s.flush()

    record(
        s,
        actor=user,
        action="sign",
        entity_type=ENTITY_SIGNATURE,
        entity_id=sig.id,
        description=f"Document {doc.file_name} signed by {user.name} ({user.role})",
        version=doc.version,
    )
    logger.info("document %s signed by user %s (signature %s)", doc.id, user.id, sig.id)
    return sig


def signature_counts(s: "Session", document_ids: list[int]) -> dict[int, int]:
    """document id -> number of signatures, computed from the signatures table."""
    from app.fsvp.modules.documents.models import DigitalSignature

    if not document_ids:
        return {}
    rows = s.execute(
        select(DigitalSignature.document_id, func.count(DigitalSignature.id))
        .where(DigitalSignature.document_id.in_(document_ids))
        .group_by(DigitalSignature.document_id)
    ).all()
    return {doc_id: int(n) for doc_id, n in rows}


def is_signed(s: "Session", document_id: int) -> bool:
    return signature_counts(s, [document_id]).get(document_id, 0) > 0


def list_documents(s: "Session", product_id: int, user: "User") -> list["Document"]:
    from app.fsvp.modules.documents.models import Document

    scope = require_capability(user, "document.view", "Not authorized to view documents")
    product = get_product_or_404(s, product_id)
    require_ownership(user, scope, is_owner(user, product), "Not authorized to view documents for this product")
    stmt = (
        select(Document)
        .where(Document.product_id == product.id)
        .order_by(Document.uploaded_at.desc(), Document.id.desc())
    )
    return list(s.scalars(stmt))


def list_signatures(s: "Session", document_id: int, user: "User") -> list["DigitalSignature"]:
    from app.fsvp.modules.documents.models import DigitalSignature

    doc = get_document(s, document_id, user)
    stmt = (
        select(DigitalSignature)
        .where(DigitalSignature.document_id == doc.id)
        .order_by(DigitalSignature.timestamp.desc(), DigitalSignature.id.desc())
    )
    return list(s.scalars(stmt))
