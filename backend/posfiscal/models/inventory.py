from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data, reduced to what an FBR invoice line needs.

    TAX FIELDS:
    - tax_category: key into the tax category table (standard_rate,
      reduced_rate, third_schedule, exempt, steel)
    - hs_code / unit_of_measure: FBR reference codes, required to report
    - retail_price_cents: printed retail price (MRP) for third schedule goods
    - sro_schedule_no / sro_item_serial_no: only for SRO-notified rates
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    price_cents = db.Column(db.Integer, nullable=True)
    retail_price_cents = db.Column(db.Integer, nullable=True)

    tax_category = db.Column(db.String(32), nullable=False, default="standard_rate")
    hs_code = db.Column(db.String(16), nullable=True)
    unit_of_measure = db.Column(db.String(64), nullable=True)
    sro_schedule_no = db.Column(db.String(64), nullable=True)
    sro_item_serial_no = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "retail_price_cents": self.retail_price_cents,
            "tax_category": self.tax_category,
            "hs_code": self.hs_code,
            "unit_of_measure": self.unit_of_measure,
            "sro_schedule_no": self.sro_schedule_no,
            "sro_item_serial_no": self.sro_item_serial_no,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
