from __future__ import annotations

from typing import Any

from flask import request

from app.fsvp.errors import ValidationError


def json_body() -> dict[str, Any]:
    """Parsed JSON object from the request body; an empty body yields {}."""
    if not request.data:
        return {}
    value = request.get_json(silent=True)
    if not isinstance(value, dict):
        raise ValidationError("Request body must be a JSON object")
    return value


def client_ip() -> str | None:
    return request.remote_addr
