"""
Declarative role capability table.

Every service operation looks up its capability here exactly once; there are
no per-endpoint role lists anywhere else.

Scopes:
- ANY: the role may act on any record.
- OWN: the role may act only on records belonging to its own vendor profile.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.fsvp.constants import ROLE_ADMIN, ROLE_AUDITOR, ROLE_DISTRIBUTOR, ROLE_VENDOR
from app.fsvp.errors import ForbiddenError, UnauthenticatedError
from app.fsvp.models import User

logger = logging.getLogger(__name__)

ANY = "any"
OWN = "own"

_REVIEWERS = {ROLE_DISTRIBUTOR: ANY, ROLE_AUDITOR: ANY}
_STAFF = {ROLE_DISTRIBUTOR: ANY, ROLE_AUDITOR: ANY, ROLE_ADMIN: ANY}

CAPABILITIES: dict[str, dict[str, str]] = {
    # products
    "product.create": {ROLE_VENDOR: OWN},
    "product.edit": {ROLE_VENDOR: OWN, **_STAFF},  # vendors additionally limited to draft
    "product.submit": {ROLE_VENDOR: OWN},
    "product.review": dict(_REVIEWERS),
    "product.view": {ROLE_VENDOR: OWN, **_STAFF},
    "product.list_all": dict(_STAFF),
    "product.list_own": {ROLE_VENDOR: OWN},
    "product.list_pending": dict(_REVIEWERS),
    "product.review_history": {ROLE_VENDOR: OWN, **_REVIEWERS},
    # vendors
    "vendor.create_profile": {ROLE_VENDOR: OWN},
    "vendor.view_own": {ROLE_VENDOR: OWN},
    "vendor.view_all": dict(_STAFF),
    "vendor.edit": {ROLE_VENDOR: OWN, **_STAFF},
    "vendor.set_verification": dict(_STAFF),
    # documents & signatures
    "document.upload": {ROLE_VENDOR: OWN},
    "document.view": {ROLE_VENDOR: OWN, **_STAFF},
    "document.sign": {ROLE_VENDOR: OWN, **_STAFF},
    # audit trail
    "audit.view_all": dict(_STAFF),
    "audit.view_entity": {ROLE_VENDOR: OWN, **_STAFF},
    "audit.view_user": {ROLE_VENDOR: OWN, **_STAFF},
    "audit.view_product": {ROLE_VENDOR: OWN, **_STAFF},
}


def capability_scope(user: User | None, capability: str) -> str | None:
    if not user or not user.is_active:
        return None
    return CAPABILITIES[capability].get(user.role)


def user_has_capability(user: User | None, capability: str) -> bool:
    return capability_scope(user, capability) is not None


def require_capability(user: User | None, capability: str, message: str | None = None) -> str:
    """Role gate. Returns the scope granted to the user's role."""
    if not user or not user.is_active:
        raise UnauthenticatedError()
    scope = capability_scope(user, capability)
    if scope is None:
        logger.warning("Forbidden: user=%s role=%s capability=%s", user.id, user.role, capability)
        raise ForbiddenError(message or f"Role '{user.role}' is not allowed to perform {capability}")
    return scope


def require_ownership(user: User, scope: str, owned: bool, message: str = "Not authorized for this record") -> None:
    """Ownership gate for OWN-scoped capabilities; ANY passes through."""
    if scope == OWN and not owned:
        logger.warning("Forbidden (ownership): user=%s role=%s", user.id, user.role)
        raise ForbiddenError(message)


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            raise UnauthenticatedError()
        return fn(*args, **kwargs)

    return wrapped


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise UnauthenticatedError()
    return u
