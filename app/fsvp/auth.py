from __future__ import annotations

import re
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request, session
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from app.fsvp.audit import record
from app.fsvp.constants import ENTITY_USER, ROLE_VENDOR, USER_ROLES
from app.fsvp.db import db_session
from app.fsvp.errors import ConflictError, RateLimitedError, UnauthenticatedError, ValidationError
from app.fsvp.models import User
from app.fsvp.rbac import current_user, login_required
from app.fsvp.security import ensure_csrf_token
from app.fsvp.serializers import user_to_dict
from app.fsvp.utils import client_ip, json_body

bp = Blueprint("auth", __name__)

_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_MIN_PASSWORD_LENGTH = 8


def _login_attempts() -> dict[str, list[datetime]]:
    # per app, so separate app instances (tests, workers) keep separate counters
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    s = db_session()
    user = s.get(User, int(user_id))
    if not user or not user.is_active:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = user


def validate_registration(payload: dict) -> dict[str, str]:
    email = (payload.get("email") or "").strip().lower() if isinstance(payload.get("email"), str) else ""
    password = payload.get("password") if isinstance(payload.get("password"), str) else ""
    name = (payload.get("name") or "").strip() if isinstance(payload.get("name"), str) else ""
    role = payload.get("role") or ROLE_VENDOR

    errors = []
    if not _EMAIL_RE.match(email):
        errors.append("A valid email is required")
    if len(password) < _MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {_MIN_PASSWORD_LENGTH} characters")
    if not name:
        errors.append("name is required")
    if role not in USER_ROLES:
        errors.append(f"role must be one of: {', '.join(USER_ROLES)}")
    if errors:
        raise ValidationError("; ".join(errors))
    return {"email": email, "password": password, "name": name, "role": role}


def _email_taken(s, email: str) -> bool:
    return s.scalars(select(User).where(User.email == email)).first() is not None


@bp.post("/register")
def register():
    from app.fsvp.modules.vendors.service import create_default_profile

    s = db_session()
    data = validate_registration(json_body())
    if _email_taken(s, data["email"]):
        raise ConflictError("User already exists")

    user = User(
        email=data["email"],
        password_hash=generate_password_hash(data["password"]),
        name=data["name"],
        role=data["role"],
        is_active=True,
    )
    s.add(user)
    try:
        s.flush()
    except IntegrityError as e:
        raise ConflictError("User already exists") from e
    record(
        s,
        actor=user,
        action="create",
        entity_type=ENTITY_USER,
        entity_id=user.id,
        description=f"User {user.email} registered as {user.role}",
    )
    if user.role == ROLE_VENDOR:
        create_default_profile(s, user)
    s.commit()

    session["user_id"] = user.id
    current_app.logger.info("Registered user %s (%s)", user.id, user.role)
    return user_to_dict(user), 201


@bp.post("/login")
def login():
    payload = json_body()
    email = (payload.get("email") or "").strip().lower() if isinstance(payload.get("email"), str) else ""
    password = payload.get("password") if isinstance(payload.get("password"), str) else ""
    ip = client_ip() or "unknown"

    if _check_rate_limit(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s)", ip)
        raise RateLimitedError("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = s.scalars(select(User).where(User.email == email)).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        current_app.logger.warning("Failed login (email=%s ip=%s request_id=%s)", email, ip, getattr(g, "request_id", None))
        raise UnauthenticatedError("Invalid credentials")

    session["user_id"] = user.id
    _login_attempts()[ip].clear()
    return user_to_dict(user)


@bp.post("/logout")
def logout():
    session.pop("user_id", None)
    return {"message": "Logged out successfully"}


@bp.get("/me")
@login_required
def me():
    return user_to_dict(current_user())


@bp.get("/csrf")
def csrf():
    return {"csrfToken": ensure_csrf_token()}
