from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Sale.fbr_status values
FBR_STATUS_PENDING = "pending"
FBR_STATUS_SYNCED = "synced"
FBR_STATUS_FAILED = "failed"

# FbrQueueItem.status values
QUEUE_PENDING = "pending"
QUEUE_PROCESSING = "processing"
QUEUE_COMPLETED = "completed"
QUEUE_FAILED = "failed"
QUEUE_OPEN_STATUSES = (QUEUE_PENDING, QUEUE_PROCESSING)


class FbrConfig(db.Model):
    """
    Per-tenant FBR Digital Invoicing credentials.

    MULTI-TENANT: Exactly one row per organization (unique org_id), so a
    tenant can never have two active configurations.

    SECURITY: The bearer token is stored Fernet-encrypted and is never
    serialized; to_dict() only exposes the last four characters.
    """
    __tablename__ = "fbr_configs"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_fbr_configs_org"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    bearer_token_encrypted = db.Column(db.Text, nullable=True)
    token_hint = db.Column(db.String(8), nullable=True)
    sandbox_mode = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_sync_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("fbr_config", uselist=False, lazy=True))

    def __repr__(self) -> str:
        return f"<FbrConfig org_id={self.org_id} sandbox={self.sandbox_mode} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "has_token": bool(self.bearer_token_encrypted),
            "token_hint": f"****{self.token_hint}" if self.token_hint else None,
            "sandbox_mode": self.sandbox_mode,
            "environment": "sandbox" if self.sandbox_mode else "production",
            "is_active": self.is_active,
            "last_sync_at": to_utc_z(self.last_sync_at) if self.last_sync_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class FbrQueueItem(db.Model):
    """
    Durable retry queue entry for an FBR submission.

    LIFECYCLE: pending -> processing -> completed | pending (retry) | failed.
    Terminal at completed or failed. Rows are never deleted (audit trail).

    invoice_payload is the exact document that was built and validated,
    replayed verbatim on each retry.
    """
    __tablename__ = "fbr_queue"
    __table_args__ = (
        # Worker selection: status filter, oldest first
        db.Index("ix_fbr_queue_status_created", "status", "created_at"),
        db.Index("ix_fbr_queue_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    invoice_payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=QUEUE_PENDING)
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    max_retries = db.Column(db.Integer, nullable=False, default=5)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("fbr_queue_items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sale_id": self.sale_id,
            "status": self.status,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
