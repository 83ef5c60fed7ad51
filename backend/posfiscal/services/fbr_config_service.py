"""
Tenant FBR configuration.

get_active_credentials() is the lookup capability handed to the submission
orchestrator and the queue worker: it turns the stored row into an
immutable TenantCredentials value so no HTTP code ever reads shared
configuration state on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..models import FbrConfig, Organization
from ..time_utils import utcnow
from .token_crypto import TokenEncryptionError, decrypt_token, encrypt_token


logger = logging.getLogger(__name__)


class FbrConfigError(ValueError):
    """Raised for invalid FBR configuration requests."""


@dataclass(frozen=True)
class TenantCredentials:
    org_id: int
    bearer_token: str
    sandbox_mode: bool = True

    def __repr__(self) -> str:
        return f"TenantCredentials(org_id={self.org_id}, sandbox_mode={self.sandbox_mode})"


def get_config(org_id: int) -> FbrConfig | None:
    return db.session.query(FbrConfig).filter_by(org_id=org_id).first()


def configure_tenant(
    org_id: int,
    *,
    bearer_token: str | None = None,
    sandbox_mode: bool | None = None,
    is_active: bool | None = None,
) -> FbrConfig:
    """
    Create or update the single FBR config row of a tenant.

    Omitted arguments keep their current value. A token is required when
    the row is first created.
    """
    org = db.session.get(Organization, org_id)
    if not org:
        raise FbrConfigError("Organization not found")

    if bearer_token is not None:
        bearer_token = bearer_token.strip()
        if not bearer_token:
            raise FbrConfigError("bearer_token cannot be blank")

    config = get_config(org_id)
    if config is None:
        if bearer_token is None:
            raise FbrConfigError("bearer_token required")
        config = FbrConfig(
            org_id=org_id,
            sandbox_mode=True if sandbox_mode is None else sandbox_mode,
            is_active=True if is_active is None else is_active,
        )
        db.session.add(config)
    else:
        if sandbox_mode is not None:
            config.sandbox_mode = sandbox_mode
        if is_active is not None:
            config.is_active = is_active

    if bearer_token is not None:
        config.bearer_token_encrypted = encrypt_token(bearer_token)
        config.token_hint = bearer_token[-4:]

    db.session.commit()
    logger.info(
        "FBR config saved for org %s (sandbox=%s, active=%s)",
        org_id, config.sandbox_mode, config.is_active,
    )
    return config


def get_active_credentials(org_id: int) -> TenantCredentials | None:
    """Credentials for an active, token-bearing config, else None."""
    config = get_config(org_id)
    if not config or not config.is_active or not config.bearer_token_encrypted:
        return None
    try:
        token = decrypt_token(config.bearer_token_encrypted)
    except TokenEncryptionError:
        logger.error("FBR token for org %s cannot be decrypted; treating as not configured", org_id)
        return None
    return TenantCredentials(org_id=org_id, bearer_token=token, sandbox_mode=bool(config.sandbox_mode))


def mark_synced(org_id: int, when: datetime | None = None) -> None:
    """Record a successful submission. Caller commits."""
    config = get_config(org_id)
    if config is not None:
        config.last_sync_at = when or utcnow()
