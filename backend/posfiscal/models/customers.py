from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Buyer master data as reported on FBR invoices.

    MULTI-TENANT: Customers are scoped to organizations via org_id.
    Sales without a customer are reported as walk-in (unregistered) buyers.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    ntn_cnic = db.Column(db.String(32), nullable=True)  # 7/9-digit NTN or 13-digit CNIC
    province = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(512), nullable=True)
    registration_type = db.Column(db.String(16), nullable=False, default="Unregistered")  # Registered, Unregistered
    phone = db.Column(db.String(32), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "ntn_cnic": self.ntn_cnic,
            "province": self.province,
            "address": self.address,
            "registration_type": self.registration_type,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
