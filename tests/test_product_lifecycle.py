"""Product lifecycle: state machine, version policy, role matrix, audit accounting."""
import pytest
from sqlalchemy import func, select

from app.fsvp.db import session_scope
from app.fsvp.errors import ConflictError, InternalError
from app.fsvp.models import AuditLog
from app.fsvp.modules.products.models import Product
from app.fsvp.modules.products.service import _conditional_update
from app.fsvp.modules.vendors.models import Vendor


def _product_log_count(app, product_id: int) -> int:
    with session_scope(app) as s:
        return s.scalar(
            select(func.count())
            .select_from(AuditLog)
            .where(AuditLog.entity_type == "product", AuditLog.entity_id == str(product_id))
        )


def _newest_product_log(app, product_id: int) -> AuditLog:
    with session_scope(app) as s:
        return s.scalars(
            select(AuditLog)
            .where(AuditLog.entity_type == "product", AuditLog.entity_id == str(product_id))
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        ).first()


def test_create_forces_draft_and_initial_version(login, product_payload):
    vendor = login("vendor_a")
    product_payload["status"] = "approved"
    product_payload["version"] = "v9.9.9"
    r = vendor.post("/api/products", json=product_payload)
    assert r.status_code == 201
    assert r.json["status"] == "draft"
    assert r.json["version"] == "v1.0.0"
    assert r.json["skuNumber"] == "SKU-2024-001"


def test_create_requires_fields(login):
    vendor = login("vendor_a")
    r = vendor.post("/api/products", json={"skuNumber": "SKU-X"})
    assert r.status_code == 400
    assert "productName is required" in r.json["message"]


def test_create_requires_vendor_role_and_profile(login, product_payload):
    assert login("distributor").post("/api/products", json=product_payload).status_code == 403
    assert login("admin").post("/api/products", json=product_payload).status_code == 403
    # vendor_c has no vendor profile
    assert login("vendor_c").post("/api/products", json=product_payload).status_code == 403


def test_create_stamps_vendor_last_submission(app, users, draft_product):
    with session_scope(app) as s:
        vendor = s.scalars(select(Vendor).where(Vendor.user_id == users["vendor_a"])).one()
        assert vendor.last_submission_date is not None


def test_duplicate_sku_conflicts_without_side_effects(app, login, draft_product, product_payload):
    other = login("vendor_b")
    with session_scope(app) as s:
        before_logs = s.scalar(select(func.count()).select_from(AuditLog))
    r = other.post("/api/products", json=product_payload)
    assert r.status_code == 409
    with session_scope(app) as s:
        assert s.scalar(select(func.count()).select_from(Product)) == 1
        assert s.scalar(select(func.count()).select_from(AuditLog)) == before_logs


def test_lifecycle_scenario_reject(app, users, login, draft_product):
    vendor, product = draft_product
    pid = product["id"]

    r = vendor.post(f"/api/products/{pid}/submit")
    assert r.status_code == 200
    assert r.json["status"] == "pending"
    assert r.json["submittedAt"] is not None

    distributor = login("distributor")
    r = distributor.post(f"/api/products/{pid}/review", json={"action": "reject", "notes": "missing allergen data"})
    assert r.status_code == 200
    assert r.json["status"] == "rejected"
    assert r.json["reviewedBy"] == users["distributor"]
    assert r.json["reviewNotes"] == "missing allergen data"
    assert r.json["reviewedAt"] is not None

    r = distributor.get(f"/api/audit/logs/entity/product/{pid}")
    assert r.status_code == 200
    assert [log["action"] for log in r.json] == ["reject", "update", "create"]
    assert r.json[0]["user"] == {"name": "Dana Distributor", "email": "distributor@example.com", "role": "distributor"}


def test_approve_notes_optional(login, draft_product):
    vendor, product = draft_product
    vendor.post(f"/api/products/{product['id']}/submit")
    r = login("auditor").post(f"/api/products/{product['id']}/review", json={"action": "approve"})
    assert r.status_code == 200
    assert r.json["status"] == "approved"
    assert r.json["reviewNotes"] is None


def test_reject_without_notes_leaves_pending(login, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    vendor.post(f"/api/products/{pid}/submit")
    distributor = login("distributor")

    for body in ({"action": "reject"}, {"action": "reject", "notes": "   "}):
        r = distributor.post(f"/api/products/{pid}/review", json=body)
        assert r.status_code == 400

    assert distributor.get(f"/api/products/{pid}").json["status"] == "pending"


def test_review_rejects_unknown_action(login, draft_product):
    vendor, product = draft_product
    vendor.post(f"/api/products/{product['id']}/submit")
    r = login("distributor").post(f"/api/products/{product['id']}/review", json={"action": "maybe"})
    assert r.status_code == 400


def test_review_role_matrix(login, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    distributor = login("distributor")

    # draft: reviewer gets a state conflict, vendor is refused by role
    assert distributor.post(f"/api/products/{pid}/review", json={"action": "approve"}).status_code == 409
    assert vendor.post(f"/api/products/{pid}/review", json={"action": "approve"}).status_code == 403

    vendor.post(f"/api/products/{pid}/submit")
    assert vendor.post(f"/api/products/{pid}/review", json={"action": "approve"}).status_code == 403
    assert login("admin").post(f"/api/products/{pid}/review", json={"action": "approve"}).status_code == 403

    assert distributor.post(f"/api/products/{pid}/review", json={"action": "approve"}).status_code == 200
    # terminal
    assert login("auditor").post(f"/api/products/{pid}/review", json={"action": "reject", "notes": "x"}).status_code == 409


def test_review_missing_product_is_404(login, users):
    assert login("distributor").post("/api/products/999/review", json={"action": "approve"}).status_code == 404


def test_submit_rules(login, draft_product):
    vendor, product = draft_product
    pid = product["id"]

    assert login("vendor_b").post(f"/api/products/{pid}/submit").status_code == 403
    assert login("distributor").post(f"/api/products/{pid}/submit").status_code == 403

    assert vendor.post(f"/api/products/{pid}/submit").status_code == 200
    r = vendor.post(f"/api/products/{pid}/submit")
    assert r.status_code == 400


def test_no_resubmission_after_rejection(login, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    vendor.post(f"/api/products/{pid}/submit")
    login("distributor").post(f"/api/products/{pid}/review", json={"action": "reject", "notes": "incomplete"})
    assert vendor.post(f"/api/products/{pid}/submit").status_code == 400


def test_update_increments_minor_version(login, draft_product):
    vendor, product = draft_product
    pid = product["id"]

    r = vendor.put(f"/api/products/{pid}", json={"productName": "Mango Chips"})
    assert r.status_code == 200
    assert r.json["version"] == "v1.1.0"
    assert r.json["productName"] == "Mango Chips"
    assert r.json["updatedAt"] >= product["updatedAt"]

    r = vendor.put(f"/api/products/{pid}", json={"allergenInfo": "May contain sulfites"})
    assert r.json["version"] == "v1.2.0"


def test_update_malformed_version_resets(app, login, draft_product, caplog):
    _, product = draft_product
    with session_scope(app) as s:
        s.get(Product, product["id"]).version = "draft-3"

    with caplog.at_level("WARNING"):
        r = login("auditor").put(f"/api/products/{product['id']}", json={"category": "Snacks"})
    assert r.status_code == 200
    assert r.json["version"] == "v1.0.0"
    assert "draft-3" in caplog.text


def test_vendor_cannot_edit_after_submit(login, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    vendor.post(f"/api/products/{pid}/submit")
    assert vendor.put(f"/api/products/{pid}", json={"productName": "Late edit"}).status_code == 403

    # privileged editors may edit in any status
    r = login("distributor").put(f"/api/products/{pid}", json={"productName": "Reviewer fix"})
    assert r.status_code == 200
    assert r.json["status"] == "pending"
    assert r.json["version"] == "v1.1.0"


def test_vendor_review_fields_are_stripped(login, draft_product):
    vendor, product = draft_product
    r = vendor.put(
        f"/api/products/{product['id']}",
        json={"status": "approved", "reviewNotes": "self-approved", "productName": "Renamed"},
    )
    assert r.status_code == 200
    assert r.json["status"] == "draft"
    assert r.json["reviewNotes"] is None
    assert r.json["productName"] == "Renamed"


def test_privileged_editor_cannot_set_status(login, draft_product):
    _, product = draft_product
    r = login("admin").put(f"/api/products/{product['id']}", json={"status": "approved"})
    assert r.status_code == 400


def test_other_vendor_cannot_edit_or_view(login, draft_product):
    _, product = draft_product
    other = login("vendor_b")
    assert other.put(f"/api/products/{product['id']}", json={"productName": "x"}).status_code == 403
    assert other.get(f"/api/products/{product['id']}").status_code == 403


def test_update_to_existing_sku_conflicts(login, draft_product, product_payload):
    vendor, product = draft_product
    product_payload["skuNumber"] = "SKU-2024-002"
    second = vendor.post("/api/products", json=product_payload).json
    r = vendor.put(f"/api/products/{second['id']}", json={"skuNumber": "SKU-2024-001"})
    assert r.status_code == 409
    assert vendor.get(f"/api/products/{second['id']}").json["version"] == "v1.0.0"


def test_each_mutation_appends_exactly_one_entry(app, login, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    assert _product_log_count(app, pid) == 1
    assert _newest_product_log(app, pid).action == "create"

    vendor.put(f"/api/products/{pid}", json={"description": "Updated"})
    assert _product_log_count(app, pid) == 2
    newest = _newest_product_log(app, pid)
    assert newest.action == "update"
    assert newest.version == "v1.1.0"
    assert '"before"' in newest.changes and '"after"' in newest.changes

    vendor.post(f"/api/products/{pid}/submit")
    assert _product_log_count(app, pid) == 3
    assert _newest_product_log(app, pid).action == "update"

    login("distributor").post(f"/api/products/{pid}/review", json={"action": "approve"})
    assert _product_log_count(app, pid) == 4
    assert _newest_product_log(app, pid).action == "approve"


def test_failed_operations_append_nothing(app, login, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    login("distributor").post(f"/api/products/{pid}/review", json={"action": "approve"})
    login("vendor_b").post(f"/api/products/{pid}/submit")
    assert _product_log_count(app, pid) == 1


def _failing_record(*args, **kwargs):
    raise InternalError("audit store unavailable")


def test_submit_rolls_back_when_audit_write_fails(app, monkeypatch, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    monkeypatch.setattr("app.fsvp.modules.products.service.record", _failing_record)

    r = vendor.post(f"/api/products/{pid}/submit")
    assert r.status_code == 500
    assert r.json["message"] == "Internal server error"

    assert vendor.get(f"/api/products/{pid}").json["status"] == "draft"
    assert _product_log_count(app, pid) == 1


def test_update_rolls_back_when_audit_write_fails(app, monkeypatch, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    monkeypatch.setattr("app.fsvp.modules.products.service.record", _failing_record)

    r = vendor.put(f"/api/products/{pid}", json={"productName": "Mango Chips"})
    assert r.status_code == 500

    current = vendor.get(f"/api/products/{pid}").json
    assert current["version"] == "v1.0.0"
    assert current["productName"] == product["productName"]
    assert _product_log_count(app, pid) == 1


def test_conditional_update_detects_stale_read(app, draft_product):
    _, product = draft_product
    with session_scope(app) as stale:
        p = stale.get(Product, product["id"])
        assert p.status == "draft"

        # another transaction wins the transition first
        with session_scope(app) as winner:
            winner.get(Product, product["id"]).status = "pending"

        with pytest.raises(ConflictError):
            _conditional_update(
                stale,
                p,
                expected_status="draft",
                expected_version=p.version,
                values={"status": "pending"},
            )


def test_product_lists(login, draft_product, product_payload):
    vendor, product = draft_product
    product_payload["skuNumber"] = "SKU-B-1"
    login("vendor_b").post("/api/products", json=product_payload)
    vendor.post(f"/api/products/{product['id']}/submit")

    distributor = login("distributor")
    assert len(distributor.get("/api/products").json) == 2
    assert [p["id"] for p in distributor.get("/api/products?status=pending").json] == [product["id"]]
    assert distributor.get("/api/products?status=bogus").status_code == 400
    assert [p["id"] for p in distributor.get("/api/products/pending").json] == [product["id"]]

    assert [p["id"] for p in vendor.get("/api/products/my").json] == [product["id"]]
    assert vendor.get("/api/products").status_code == 403
    assert vendor.get("/api/products/pending").status_code == 403
    assert login("admin").get("/api/products/pending").status_code == 403


def test_review_history(login, draft_product):
    vendor, product = draft_product
    pid = product["id"]
    vendor.put(f"/api/products/{pid}", json={"category": "Snacks"})
    vendor.post(f"/api/products/{pid}/submit")
    login("distributor").post(f"/api/products/{pid}/review", json={"action": "reject", "notes": "no COA"})

    r = vendor.get(f"/api/products/{pid}/review-history")
    assert r.status_code == 200
    assert [log["action"] for log in r.json] == ["reject"]
    assert login("vendor_b").get(f"/api/products/{pid}/review-history").status_code == 403


def test_unauthenticated_is_401(app, users):
    c = app.test_client()
    assert c.get("/api/products").status_code == 401
    assert c.post("/api/products", json={}).status_code == 401
