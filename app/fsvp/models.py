from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, event, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship

from app.fsvp.constants import ROLE_VENDOR
from app.fsvp.errors import InternalError


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_VENDOR)  # vendor, distributor, auditor, admin
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    vendor: Mapped["Vendor | None"] = relationship(
        "Vendor",
        back_populates="user",
        uselist=False,
        lazy="selectin",
    )


class AuditLog(Base):
    """
    Append-only audit trail entry. Rows are inserted once and never updated or deleted;
    history for any entity is a projection over this table.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
        Index("idx_audit_logs_user", "user_id"),
        Index("idx_audit_logs_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    action: Mapped[str] = mapped_column(String(16), nullable=False)  # create, update, upload, approve, reject, sign, edit, delete
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)  # product, document, signature, vendor, user
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)  # string for flexibility

    description: Mapped[str] = mapped_column(Text, nullable=False)
    changes: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON {"before": ..., "after": ...}
    version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)


@event.listens_for(AuditLog, "before_update")
def _audit_log_no_update(mapper, connection, target):  # type: ignore[no-redef]
    raise InternalError(f"Audit log entry {target.id} is immutable")


@event.listens_for(AuditLog, "before_delete")
def _audit_log_no_delete(mapper, connection, target):  # type: ignore[no-redef]
    raise InternalError(f"Audit log entry {target.id} cannot be deleted")


@event.listens_for(Session, "do_orm_execute")
def _audit_log_no_bulk_writes(orm_execute_state):  # type: ignore[no-redef]
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is AuditLog:
        raise InternalError("Bulk update/delete of audit log entries is not allowed")


@event.listens_for(User, "before_update")
def _user_role_is_fixed(mapper, connection, target):  # type: ignore[no-redef]
    history = inspect(target).attrs.role.history
    if history.deleted and history.added and history.deleted[0] != history.added[0]:
        raise InternalError(f"Role of user {target.id} cannot change after registration")


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.fsvp.modules.vendors.models import Vendor  # noqa: E402,F401
from app.fsvp.modules.products.models import Product  # noqa: E402,F401
from app.fsvp.modules.documents.models import DigitalSignature, Document  # noqa: E402,F401
