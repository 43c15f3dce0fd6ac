"""Auth endpoints, CSRF, request ids and vendor profile operations."""
from sqlalchemy import select

from app.fsvp.db import session_scope
from app.fsvp.models import AuditLog, User


def test_health_ok(app):
    c = app.test_client()
    r = c.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True
    assert c.get("/healthz").data == b"ok"


def test_register_vendor_creates_profile(app):
    c = app.test_client()
    r = c.post(
        "/api/auth/register",
        json={"email": "New@Example.com", "password": "longenough", "name": "Green Farms", "role": "vendor"},
    )
    assert r.status_code == 201
    assert r.json["email"] == "new@example.com"
    assert "password_hash" not in r.json and "passwordHash" not in r.json

    me = c.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json["id"] == r.json["id"]

    profile = c.get("/api/vendors/me")
    assert profile.status_code == 200
    assert profile.json["companyName"] == "Green Farms"
    assert profile.json["verificationStatus"] == "unverified"

    with session_scope(app) as s:
        actions = {(log.action, log.entity_type) for log in s.scalars(select(AuditLog))}
    assert actions == {("create", "user"), ("create", "vendor")}


def test_register_defaults_to_vendor_and_validates(app, users):
    c = app.test_client()
    r = c.post("/api/auth/register", json={"email": "v@example.com", "password": "longenough", "name": "V"})
    assert r.status_code == 201
    assert r.json["role"] == "vendor"

    c = app.test_client()
    assert c.post("/api/auth/register", json={"email": "bad", "password": "longenough", "name": "X"}).status_code == 400
    assert c.post("/api/auth/register", json={"email": "x@example.com", "password": "short", "name": "X"}).status_code == 400
    assert c.post("/api/auth/register", json={"email": "x@example.com", "password": "longenough", "name": "X", "role": "root"}).status_code == 400
    r = c.post("/api/auth/register", json={"email": "vendor_a@example.com", "password": "longenough", "name": "Dup"})
    assert r.status_code == 409


def test_register_duplicate_caught_by_unique_constraint(app, users, monkeypatch):
    monkeypatch.setattr("app.fsvp.auth._email_taken", lambda s, email: False)
    c = app.test_client()
    r = c.post("/api/auth/register", json={"email": "vendor_a@example.com", "password": "longenough", "name": "Dup"})
    assert r.status_code == 409
    assert r.json["message"] == "User already exists"

    with session_scope(app) as s:
        assert len(s.scalars(select(User).where(User.email == "vendor_a@example.com")).all()) == 1


def test_register_distributor_has_no_vendor_profile(app):
    c = app.test_client()
    c.post("/api/auth/register", json={"email": "d@example.com", "password": "longenough", "name": "D", "role": "distributor"})
    assert c.get("/api/vendors/me").status_code == 403


def test_login_logout(app, users):
    c = app.test_client()
    assert c.get("/api/auth/me").status_code == 401

    r = c.post("/api/auth/login", json={"email": "vendor_a@example.com", "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json["message"] == "Invalid credentials"

    r = c.post("/api/auth/login", json={"email": "VENDOR_A@example.com", "password": "password123"})
    assert r.status_code == 200
    assert r.json["role"] == "vendor"

    assert c.post("/api/auth/logout").json["message"]
    assert c.get("/api/auth/me").status_code == 401


def test_login_rate_limited(app, users):
    c = app.test_client()
    for _ in range(5):
        assert c.post("/api/auth/login", json={"email": "vendor_a@example.com", "password": "nope"}).status_code == 401
    r = c.post("/api/auth/login", json={"email": "vendor_a@example.com", "password": "password123"})
    assert r.status_code == 429


def test_request_id_header(app):
    c = app.test_client()
    r = c.get("/api/auth/me")
    assert len(r.headers["X-Request-ID"]) == 32
    r = c.get("/api/auth/me", headers={"X-Request-ID": "trace-123"})
    assert r.headers["X-Request-ID"] == "trace-123"


def test_unknown_route_is_json_404(app):
    r = app.test_client().get("/api/nope")
    assert r.status_code == 404
    assert "message" in r.json


def test_csrf_enforced_when_enabled(app, login, product_payload):
    app.config["CSRF_ENABLED"] = True
    vendor = login("vendor_a")

    r = vendor.post("/api/products", json=product_payload)
    assert r.status_code == 403

    token = vendor.get("/api/auth/csrf").json["csrfToken"]
    r = vendor.post("/api/products", json=product_payload, headers={"X-CSRF-Token": token})
    assert r.status_code == 201


# ---------- vendors ----------
def test_vendor_profile_create_conflicts_when_present(login, users):
    r = login("vendor_a").post("/api/vendors", json={"companyName": "Again", "country": "MX"})
    assert r.status_code == 409


def test_vendor_profile_create(login, users):
    c = login("vendor_c")
    assert c.post("/api/vendors", json={"companyName": "Cold Start"}).status_code == 400
    r = c.post("/api/vendors", json={"companyName": "Cold Start Co", "country": "PE", "phone": "+51 1 555"})
    assert r.status_code == 201
    assert r.json["verificationStatus"] == "unverified"
    assert c.get("/api/vendors/me").json["companyName"] == "Cold Start Co"
    assert login("distributor").post("/api/vendors", json={"companyName": "X", "country": "US"}).status_code == 403


def test_vendor_update_strips_verification_for_owner(login, users):
    vendor = login("vendor_a")
    vid = vendor.get("/api/vendors/me").json["id"]
    r = vendor.put(f"/api/vendors/{vid}", json={"address": "1 Calle Mango", "verificationStatus": "verified"})
    assert r.status_code == 200
    assert r.json["address"] == "1 Calle Mango"
    assert r.json["verificationStatus"] == "unverified"

    assert login("vendor_b").put(f"/api/vendors/{vid}", json={"address": "hijack"}).status_code == 403


def test_staff_can_set_verification(app, login, users):
    vid = login("vendor_a").get("/api/vendors/me").json["id"]
    auditor = login("auditor")
    r = auditor.put(f"/api/vendors/{vid}", json={"verificationStatus": "verified"})
    assert r.status_code == 200
    assert r.json["verificationStatus"] == "verified"
    assert auditor.put(f"/api/vendors/{vid}", json={"verificationStatus": "gold"}).status_code == 400
    assert auditor.put("/api/vendors/999", json={"verificationStatus": "verified"}).status_code == 404

    with session_scope(app) as s:
        log = s.scalars(select(AuditLog).where(AuditLog.entity_type == "vendor")).one()
        assert log.action == "update"
        assert '"verificationStatus": "verified"' in log.changes


def test_vendor_listing(login, users):
    distributor = login("distributor")
    r = distributor.get("/api/vendors")
    assert r.status_code == 200
    assert {v["companyName"] for v in r.json} == {"Acme Foods SA", "Beta Produce Ltd"}
    vid = r.json[0]["id"]
    assert distributor.get(f"/api/vendors/{vid}").status_code == 200
    assert login("vendor_a").get("/api/vendors").status_code == 403
    assert login("vendor_a").get(f"/api/vendors/{vid}").status_code == 403
