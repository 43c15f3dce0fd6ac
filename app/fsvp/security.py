import secrets

from flask import Request, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """The portal UI sends the token from GET /api/auth/csrf in the X-CSRF-Token header."""
    token = req.headers.get("X-CSRF-Token")
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(token, expected))
