from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fsvp.constants import DEFAULT_VERSION, STATUS_DRAFT
from app.fsvp.models import Base

if TYPE_CHECKING:
    from app.fsvp.modules.documents.models import DigitalSignature, Document
    from app.fsvp.modules.vendors.models import Vendor


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("idx_products_vendor_id", "vendor_id"),
        Index("idx_products_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)

    # Unique across all vendors, not just within one
    sku_number: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    manufacturer: Mapped[str] = mapped_column(String(255), nullable=False)
    country_of_origin: Mapped[str] = mapped_column(String(128), nullable=False)
    ingredients_list: Mapped[str | None] = mapped_column(Text, nullable=True)
    allergen_info: Mapped[str | None] = mapped_column(Text, nullable=True)

    # draft -> pending -> approved | rejected
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_DRAFT)
    version: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_VERSION)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    vendor: Mapped["Vendor"] = relationship("Vendor", back_populates="products", lazy="selectin")
    documents: Mapped[list["Document"]] = relationship(
        "Document",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="select",
    )
    signatures: Mapped[list["DigitalSignature"]] = relationship(
        "DigitalSignature",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="select",
    )
