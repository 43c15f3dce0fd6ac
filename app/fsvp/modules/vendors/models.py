from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fsvp.models import Base

if TYPE_CHECKING:
    from app.fsvp.models import User
    from app.fsvp.modules.products.models import Product


class Vendor(Base):
    __tablename__ = "vendors"
    __table_args__ = (
        Index("idx_vendors_verification_status", "verification_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # 1:1 with the owning vendor user
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    country: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # unverified, pending, verified (changed by distributor/auditor/admin only)
    verification_status: Mapped[str] = mapped_column(String(16), nullable=False, default="unverified")
    last_submission_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User"] = relationship("User", back_populates="vendor", lazy="selectin")
    products: Mapped[list["Product"]] = relationship(
        "Product",
        back_populates="vendor",
        cascade="all, delete-orphan",
        lazy="select",
    )
