"""
Shared fixtures: an app on a temporary SQLite file with one user per role.
"""
import pytest
from werkzeug.security import generate_password_hash

from app.fsvp import create_app
from app.fsvp.db import session_scope
from app.fsvp.models import Base, User
from app.fsvp.modules.vendors.models import Vendor

PASSWORD = "password123"

PRODUCT_PAYLOAD = {
    "skuNumber": "SKU-2024-001",
    "productName": "Dried Mango Slices",
    "category": "Dried Fruit",
    "description": "Unsweetened dried mango",
    "manufacturer": "Acme Foods SA",
    "countryOfOrigin": "Mexico",
    "ingredientsList": "Mango",
    "allergenInfo": "None",
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("CSRF_ENABLED", "MAX_UPLOAD_BYTES", "S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def users(app):
    """email prefix -> user id. vendor_a/vendor_b have profiles, vendor_c does not."""
    # cheap hash; the default method is slow on purpose
    pw_hash = generate_password_hash(PASSWORD, method="pbkdf2:sha256:1000")
    ids = {}
    with session_scope(app) as s:
        for key, name, role, company in (
            ("vendor_a", "Acme Foods", "vendor", "Acme Foods SA"),
            ("vendor_b", "Beta Produce", "vendor", "Beta Produce Ltd"),
            ("vendor_c", "Cold Start", "vendor", None),
            ("distributor", "Dana Distributor", "distributor", None),
            ("auditor", "Avery Auditor", "auditor", None),
            ("admin", "Ada Admin", "admin", None),
        ):
            u = User(email=f"{key}@example.com", password_hash=pw_hash, name=name, role=role, is_active=True)
            s.add(u)
            s.flush()
            if company:
                s.add(Vendor(user_id=u.id, company_name=company, country="MX", verification_status="unverified"))
            ids[key] = u.id
    return ids


@pytest.fixture()
def login(app, users):
    """login("vendor_a") -> a test client holding that user's session."""

    def _login(key: str):
        c = app.test_client()
        r = c.post("/api/auth/login", json={"email": f"{key}@example.com", "password": PASSWORD})
        assert r.status_code == 200, r.json
        return c

    return _login


@pytest.fixture()
def product_payload():
    return dict(PRODUCT_PAYLOAD)


@pytest.fixture()
def draft_product(login):
    """A draft product owned by vendor_a; returns (vendor client, product json)."""
    vendor = login("vendor_a")
    r = vendor.post("/api/products", json=PRODUCT_PAYLOAD)
    assert r.status_code == 201, r.json
    return vendor, r.json
