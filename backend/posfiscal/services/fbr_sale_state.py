"""
The only writers of Sale.fbr_* fields.

Transitions move forward: a synced sale is never reopened, so queue or
failure updates arriving for it are ignored. Callers commit.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Sale
from ..models.fbr import FBR_STATUS_FAILED, FBR_STATUS_PENDING, FBR_STATUS_SYNCED
from ..time_utils import utcnow
from .fbr_config_service import mark_synced


logger = logging.getLogger(__name__)


def mark_sale_synced(sale: Sale, invoice_number: str | None, dated: str | None, when: datetime | None = None) -> None:
    when = when or utcnow()
    sale.fbr_status = FBR_STATUS_SYNCED
    sale.fbr_invoice_number = invoice_number
    sale.fbr_dated = dated
    sale.fbr_error = None
    sale.fbr_synced_at = when
    mark_synced(sale.org_id, when)
    logger.info("Sale %s synced with FBR as %s", sale.id, invoice_number)


def mark_sale_queued(sale: Sale, error: str | None) -> None:
    if sale.fbr_status == FBR_STATUS_SYNCED:
        return
    sale.fbr_status = FBR_STATUS_PENDING
    sale.fbr_error = error


def mark_sale_failed(sale: Sale, error: str | None) -> None:
    if sale.fbr_status == FBR_STATUS_SYNCED:
        logger.warning("Ignoring FBR failure for already synced sale %s", sale.id)
        return
    sale.fbr_status = FBR_STATUS_FAILED
    sale.fbr_error = error
    logger.warning("Sale %s failed FBR reporting: %s", sale.id, error)


def force_sale_synced(sale_id: int, invoice_number: str | None, dated: str | None, when: datetime | None = None) -> None:
    """
    Write an FBR-accepted result with a single UPDATE that skips the
    optimistic version check. For use once the ORM path has lost every
    retry: FBR has already issued the number, so it must not be dropped.
    Caller commits.
    """
    when = when or utcnow()
    db.session.query(Sale).filter(Sale.id == sale_id).update(
        {
            "fbr_status": FBR_STATUS_SYNCED,
            "fbr_invoice_number": invoice_number,
            "fbr_dated": dated,
            "fbr_error": None,
            "fbr_synced_at": when,
            "version_id": Sale.version_id + 1,
        },
        synchronize_session=False,
    )
    logger.warning("Sale %s synced with FBR as %s via direct update", sale_id, invoice_number)
