"""Create users, vendors, products, documents, signatures and audit log tables.

Revision ID: a7f3c1d2e9b4
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a7f3c1d2e9b4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ensure_index(insp, table: str, name: str, columns: list[str], unique: bool = False) -> None:
    existing = {idx["name"] for idx in insp.get_indexes(table)} if insp.has_table(table) else set()
    if name not in existing:
        op.create_index(name, table, columns, unique=unique)


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)

    if not insp.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="vendor"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("is_email_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.UniqueConstraint("email"),
        )

    if not insp.has_table("vendors"):
        op.create_table(
            "vendors",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("company_name", sa.String(255), nullable=False),
            sa.Column("country", sa.String(128), nullable=False, server_default=""),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("verification_status", sa.String(16), nullable=False, server_default="unverified"),
            sa.Column("last_submission_date", sa.DateTime(timezone=False), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("user_id"),
        )
    _ensure_index(insp, "vendors", "idx_vendors_verification_status", ["verification_status"])

    if not insp.has_table("products"):
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("vendor_id", sa.Integer(), nullable=False),
            sa.Column("sku_number", sa.String(128), nullable=False),
            sa.Column("product_name", sa.String(255), nullable=False),
            sa.Column("category", sa.String(128), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("manufacturer", sa.String(255), nullable=False),
            sa.Column("country_of_origin", sa.String(128), nullable=False),
            sa.Column("ingredients_list", sa.Text(), nullable=True),
            sa.Column("allergen_info", sa.Text(), nullable=True),
            sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
            sa.Column("version", sa.String(32), nullable=False, server_default="v1.0.0"),
            sa.Column("submitted_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("reviewed_by", sa.Integer(), nullable=True),
            sa.Column("review_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
            sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("sku_number"),
        )
    _ensure_index(insp, "products", "idx_products_vendor_id", ["vendor_id"])
    _ensure_index(insp, "products", "idx_products_status", ["status"])

    if not insp.has_table("documents"):
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("file_name", sa.String(255), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=False),
            sa.Column("file_type", sa.String(128), nullable=False),
            sa.Column("storage_key", sa.String(512), nullable=False),
            sa.Column("sha256", sa.String(64), nullable=False),
            sa.Column("version", sa.String(32), nullable=False, server_default="v1.0.0"),
            sa.Column("uploaded_by", sa.Integer(), nullable=False),
            sa.Column("uploaded_at", sa.DateTime(timezone=False), nullable=False),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="RESTRICT"),
        )
    _ensure_index(insp, "documents", "idx_documents_product_id", ["product_id"])

    if not insp.has_table("digital_signatures"):
        op.create_table(
            "digital_signatures",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_id", sa.Integer(), nullable=False),
            sa.Column("document_id", sa.Integer(), nullable=True),
            sa.Column("signed_by", sa.Integer(), nullable=False),
            sa.Column("signature_hash", sa.String(64), nullable=False),
            sa.Column("signature_data", sa.Text(), nullable=False),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=False), nullable=False),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["signed_by"], ["users.id"], ondelete="RESTRICT"),
        )
    _ensure_index(insp, "digital_signatures", "idx_digital_signatures_product_id", ["product_id"])
    _ensure_index(insp, "digital_signatures", "idx_digital_signatures_document_id", ["document_id"])

    if not insp.has_table("audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.String(16), nullable=False),
            sa.Column("entity_type", sa.String(32), nullable=False),
            sa.Column("entity_id", sa.String(64), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("changes", sa.Text(), nullable=True),
            sa.Column("version", sa.String(32), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="RESTRICT"),
        )
    _ensure_index(insp, "audit_logs", "idx_audit_logs_entity", ["entity_type", "entity_id"])
    _ensure_index(insp, "audit_logs", "idx_audit_logs_user", ["user_id"])
    _ensure_index(insp, "audit_logs", "idx_audit_logs_created_at", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("digital_signatures")
    op.drop_table("documents")
    op.drop_table("products")
    op.drop_table("vendors")
    op.drop_table("users")
