from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class Sale(db.Model):
    """
    Finalized sale document, owned by the sales subsystem.

    FBR FIELDS: The compliance engine only ever writes fbr_status,
    fbr_invoice_number, fbr_dated, fbr_error and fbr_synced_at.
    fbr_status moves forward only: pending -> synced, or
    pending -> failed; a synced sale is never reopened.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_number", name="uq_sales_org_invoice_number"),
        # Composite index for tenant-scoped compliance dashboards
        db.Index("ix_sales_org_fbr_status", "org_id", "fbr_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    # Human-readable invoice number (e.g., "INV-2026-000123"), sent as invoiceRefNo
    invoice_number = db.Column(db.String(64), nullable=False)

    # Amounts (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # FBR synchronization state
    fbr_status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, synced, failed
    fbr_invoice_number = db.Column(db.String(64), nullable=True)
    fbr_dated = db.Column(db.String(32), nullable=True)  # Stored verbatim as returned by FBR
    fbr_error = db.Column(db.Text, nullable=True)
    fbr_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "fbr_status": self.fbr_status,
            "fbr_invoice_number": self.fbr_invoice_number,
            "fbr_dated": self.fbr_dated,
            "fbr_error": self.fbr_error,
            "fbr_synced_at": to_utc_z(self.fbr_synced_at) if self.fbr_synced_at else None,
            "version_id": self.version_id,
        }

class SaleLine(db.Model):
    """Individual line items on a sale document (prices snapshotted at sale time)."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    retail_price_cents = db.Column(db.Integer, nullable=True)  # MRP per unit, third schedule only
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship(
        "Sale",
        backref=db.backref("lines", lazy=True, order_by="SaleLine.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }
