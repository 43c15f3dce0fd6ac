from __future__ import annotations

import io

from flask import Blueprint, current_app, request, send_file

from app.fsvp.db import db_session
from app.fsvp.modules.documents.service import (
    get_document,
    list_documents,
    list_signatures,
    read_document_bytes,
    sign_document,
    signature_counts,
    upload_document,
)
from app.fsvp.rbac import current_user, login_required
from app.fsvp.serializers import document_to_dict, signature_to_dict
from app.fsvp.storage import storage_from_config
from app.fsvp.utils import client_ip

bp = Blueprint("documents", __name__)


@bp.get("/products/<int:product_id>/documents")
@login_required
def product_documents(product_id: int):
    s = db_session()
    docs = list_documents(s, product_id, current_user())
    counts = signature_counts(s, [d.id for d in docs])
    return [document_to_dict(d, signature_count=counts.get(d.id, 0)) for d in docs]


@bp.post("/products/<int:product_id>/documents")
@login_required
def product_document_upload(product_id: int):
    s = db_session()
    f = request.files.get("file")
    doc = upload_document(
        s,
        product_id,
        f.read() if f else b"",
        f.filename if f else None,
        f.mimetype if f else None,
        current_user(),
        storage=storage_from_config(current_app.config),
        max_bytes=int(current_app.config["MAX_UPLOAD_BYTES"]),
    )
    s.commit()
    return document_to_dict(doc, signature_count=0), 201


@bp.get("/documents/<int:document_id>")
@login_required
def document_detail(document_id: int):
    s = db_session()
    doc = get_document(s, document_id, current_user())
    counts = signature_counts(s, [doc.id])
    return document_to_dict(doc, signature_count=counts.get(doc.id, 0))


@bp.get("/documents/<int:document_id>/download")
@login_required
def document_download(document_id: int):
    s = db_session()
    doc = get_document(s, document_id, current_user())
    data = read_document_bytes(storage_from_config(current_app.config), doc)
    return send_file(
        io.BytesIO(data),
        mimetype=doc.file_type,
        as_attachment=True,
        download_name=doc.file_name,
        max_age=0,
    )


@bp.post("/documents/<int:document_id>/sign")
@login_required
def document_sign(document_id: int):
    s = db_session()
    sig = sign_document(
        s,
        document_id,
        current_user(),
        storage=storage_from_config(current_app.config),
        ip_address=client_ip(),
    )
    s.commit()
    return signature_to_dict(sig), 201


@bp.get("/documents/<int:document_id>/signatures")
@login_required
def document_signatures(document_id: int):
    s = db_session()
    return [signature_to_dict(sig) for sig in list_signatures(s, document_id, current_user())]
