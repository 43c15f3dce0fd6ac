from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy import String, and_, cast, func, or_, select
from sqlalchemy.orm import Session

from app.fsvp.constants import (
    AUDIT_ACTIONS,
    AUDIT_DEFAULT_LIMIT,
    AUDIT_MAX_LIMIT,
    ENTITY_DOCUMENT,
    ENTITY_PRODUCT,
    ENTITY_SIGNATURE,
)
from app.fsvp.errors import InternalError, ValidationError
from app.fsvp.models import AuditLog, User
from app.fsvp.serializers import audit_log_to_dict, dumps_snapshot

logger = logging.getLogger(__name__)


def record(
    s: Session,
    *,
    actor: User,
    action: str,
    entity_type: str,
    entity_id: int | str,
    description: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    version: str | None = None,
) -> AuditLog:
    """
    Append one audit entry to the caller's session.

    The entry is flushed together with the primary mutation and committed by the
    caller, so a failed audit write rolls the mutation back with it.
    """
    if action not in AUDIT_ACTIONS:
        raise InternalError(f"Unknown audit action {action!r}")
    if actor is None or actor.id is None:
        raise InternalError("Audit entries require a persisted actor")

    changes = None
    if before is not None or after is not None:
        changes = dumps_snapshot({"before": before, "after": after})

    in_request = has_request_context()
    log = AuditLog(
        request_id=getattr(g, "request_id", None) if in_request else None,
        user_id=actor.id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        description=description,
        changes=changes,
        version=version,
        ip_address=request.remote_addr if in_request else None,
    )
    s.add(log)
    logger.debug("audit %s %s:%s by user %s", action, entity_type, log.entity_id, actor.id)
    return log


def _newest_first(stmt):
    return stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())


def logs_for_entity(s: Session, entity_type: str, entity_id: int | str) -> list[AuditLog]:
    stmt = select(AuditLog).where(
        AuditLog.entity_type == entity_type,
        AuditLog.entity_id == str(entity_id),
    )
    return list(s.scalars(_newest_first(stmt)))


def logs_for_user(s: Session, user_id: int) -> list[AuditLog]:
    stmt = select(AuditLog).where(AuditLog.user_id == user_id)
    return list(s.scalars(_newest_first(stmt)))


def logs_for_product(s: Session, product_id: int) -> list[AuditLog]:
    """
    Full derived trail for a product: the product's own entries plus entries
    for every document and signature that belongs to it.
    """
    from app.fsvp.modules.documents.models import DigitalSignature, Document

    document_ids = select(cast(Document.id, String)).where(Document.product_id == product_id)
    signature_ids = select(cast(DigitalSignature.id, String)).where(DigitalSignature.product_id == product_id)

    stmt = select(AuditLog).where(
        or_(
            and_(AuditLog.entity_type == ENTITY_PRODUCT, AuditLog.entity_id == str(product_id)),
            and_(AuditLog.entity_type == ENTITY_DOCUMENT, AuditLog.entity_id.in_(document_ids)),
            and_(AuditLog.entity_type == ENTITY_SIGNATURE, AuditLog.entity_id.in_(signature_ids)),
        )
    )
    return list(s.scalars(_newest_first(stmt)))


@dataclass(frozen=True)
class AuditFilters:
    limit: int = AUDIT_DEFAULT_LIMIT
    offset: int = 0
    action: str | None = None
    entity_type: str | None = None
    start: datetime | None = None
    end: datetime | None = None  # exclusive upper bound when end_inclusive is False
    end_inclusive: bool = True


def _parse_int(raw: str | None, default: int, name: str) -> int:
    raw = (raw or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _parse_timestamp(raw: str | None, name: str) -> tuple[datetime | None, bool]:
    """Returns (value, is_date_only)."""
    raw = (raw or "").strip()
    if not raw:
        return None, False
    if len(raw) == 10:
        try:
            return datetime.combine(date.fromisoformat(raw), time.min), True
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 date or timestamp")
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or timestamp")
    if value.tzinfo is not None:
        # stored timestamps are naive UTC
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value, False


def parse_filters(args: dict[str, str]) -> AuditFilters:
    """Build AuditFilters from query-string style arguments (limit, offset, action, entityType, startDate, endDate)."""
    limit = _parse_int(args.get("limit"), AUDIT_DEFAULT_LIMIT, "limit")
    if limit <= 0:
        limit = AUDIT_DEFAULT_LIMIT
    limit = min(limit, AUDIT_MAX_LIMIT)

    offset = _parse_int(args.get("offset"), 0, "offset")
    if offset < 0:
        raise ValidationError("offset must not be negative")

    action = (args.get("action") or "").strip() or None
    if action and action not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown action {action!r}. Must be one of: {', '.join(sorted(AUDIT_ACTIONS))}")

    entity_type = (args.get("entityType") or "").strip() or None

    start, _ = _parse_timestamp(args.get("startDate"), "startDate")
    end, end_is_date = _parse_timestamp(args.get("endDate"), "endDate")
    end_inclusive = True
    if end is not None and end_is_date:
        # whole-day end date: everything before the next midnight
        end = end + timedelta(days=1)
        end_inclusive = False

    if start and end and start > end:
        raise ValidationError("startDate must not be after endDate")

    return AuditFilters(
        limit=limit,
        offset=offset,
        action=action,
        entity_type=entity_type,
        start=start,
        end=end,
        end_inclusive=end_inclusive,
    )


def list_logs(s: Session, filters: AuditFilters) -> tuple[list[AuditLog], int]:
    """
    Paginated, newest-first listing. ``total`` counts every row matching the
    filters, ignoring limit/offset.
    """
    conditions = []
    if filters.action:
        conditions.append(AuditLog.action == filters.action)
    if filters.entity_type:
        conditions.append(AuditLog.entity_type == filters.entity_type)
    if filters.start:
        conditions.append(AuditLog.created_at >= filters.start)
    if filters.end:
        if filters.end_inclusive:
            conditions.append(AuditLog.created_at <= filters.end)
        else:
            conditions.append(AuditLog.created_at < filters.end)

    total = s.scalar(select(func.count()).select_from(AuditLog).where(*conditions)) or 0

    stmt = _newest_first(select(AuditLog).where(*conditions))
    stmt = stmt.limit(min(filters.limit, AUDIT_MAX_LIMIT)).offset(filters.offset)
    return list(s.scalars(stmt)), int(total)


def enrich(s: Session, logs: list[AuditLog]) -> list[dict[str, Any]]:
    """Serialize logs with the actor's {name, email, role} attached under "user"."""
    user_ids = {log.user_id for log in logs}
    users: dict[int, User] = {}
    if user_ids:
        users = {u.id: u for u in s.scalars(select(User).where(User.id.in_(user_ids)))}
    return [audit_log_to_dict(log, actor=users.get(log.user_id), include_actor=True) for log in logs]
