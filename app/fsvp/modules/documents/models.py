from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.fsvp.constants import DEFAULT_VERSION
from app.fsvp.models import Base

if TYPE_CHECKING:
    from app.fsvp.modules.products.models import Product


class Document(Base):
    """
    Uploaded compliance file. Append-only per product.

    No "signed" column: whether a document is signed is
    answered by querying its DigitalSignature rows.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_product_id", "product_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    file_type: Mapped[str] = mapped_column(String(128), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)

    # product version at upload time
    version: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_VERSION)

    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    product: Mapped["Product"] = relationship("Product", back_populates="documents", lazy="selectin")
    signatures: Mapped[list["DigitalSignature"]] = relationship(
        "DigitalSignature",
        back_populates="document",
        lazy="select",
    )


class DigitalSignature(Base):
    """Immutable signature record; a document may collect any number of these."""

    __tablename__ = "digital_signatures"
    __table_args__ = (
        Index("idx_digital_signatures_product_id", "product_id"),
        Index("idx_digital_signatures_document_id", "document_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    document_id: Mapped[int | None] = mapped_column(ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    signed_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    signature_hash: Mapped[str] = mapped_column(String(64), nullable=False)  # SHA-256 hex
    signature_data: Mapped[str] = mapped_column(Text, nullable=False)  # JSON snapshot
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    product: Mapped["Product"] = relationship("Product", back_populates="signatures", lazy="selectin")
    document: Mapped["Document | None"] = relationship("Document", back_populates="signatures", lazy="selectin")
