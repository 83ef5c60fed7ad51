"""
Submission Orchestrator - reports a finalized sale to FBR.

Runs inline with sale finalization (the cashier waits for at most one
validate + submit round trip) and always answers with a typed outcome:

    START -> BUILD -> VALIDATE -> SUBMIT -> synced | queued

- build failure (incomplete sale or seller data)      -> failed, not queued
- no active FBR config / token refused                -> failed, not queued
- FBR rejects the data during validation              -> failed, not queued
- gateway unreachable, throttled or 5xx in validation -> queued
- any retryable submit failure                        -> queued
- submit accepted                                     -> synced

The sale's invoice number travels as invoiceRefNo so FBR can deduplicate
an ambiguous (timed out) submission that is later retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Sale
from ..models.fbr import FBR_STATUS_FAILED, FBR_STATUS_SYNCED
from .concurrency import run_with_retry
from .fbr_client import FbrClient, Rejected
from .fbr_config_service import get_active_credentials
from .fbr_errors import NOT_CONFIGURED_MESSAGE
from .fbr_queue_service import enqueue, open_item_for_sale
from .fbr_sale_state import force_sale_synced, mark_sale_failed, mark_sale_synced
from .invoice_builder import InvoiceBuildError, build_invoice


logger = logging.getLogger(__name__)

OUTCOME_SYNCED = "synced"
OUTCOME_QUEUED = "queued"
OUTCOME_FAILED = "failed"


class SubmissionError(ValueError):
    """Raised when the submission request itself is invalid (e.g. unknown sale)."""


@dataclass(frozen=True)
class SubmissionOutcome:
    status: str
    sale_id: int
    fbr_invoice_number: str | None = None
    fbr_dated: str | None = None
    error: str | None = None
    queue_item_id: int | None = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "sale_id": self.sale_id,
            "fbr_invoice_number": self.fbr_invoice_number,
            "fbr_dated": self.fbr_dated,
            "error": self.error,
            "queue_item_id": self.queue_item_id,
            "details": self.details,
        }


def _fail(sale_id: int, error: str, details: dict | None = None) -> SubmissionOutcome:
    def _op():
        sale = db.session.get(Sale, sale_id)
        mark_sale_failed(sale, error)
        db.session.commit()
    run_with_retry(_op)
    return SubmissionOutcome(status=OUTCOME_FAILED, sale_id=sale_id, error=error, details=details or {})


def _queue(sale_id: int, payload: dict, error: str) -> SubmissionOutcome:
    def _op():
        sale = db.session.get(Sale, sale_id)
        item = enqueue(sale, payload, error)
        db.session.commit()
        return item.id
    item_id = run_with_retry(_op)
    return SubmissionOutcome(status=OUTCOME_QUEUED, sale_id=sale_id, error=error, queue_item_id=item_id)


def _synced(sale_id: int, invoice_number: str | None, dated: str | None) -> SubmissionOutcome:
    def _op():
        sale = db.session.get(Sale, sale_id)
        mark_sale_synced(sale, invoice_number, dated)
        db.session.commit()

    def _direct():
        force_sale_synced(sale_id, invoice_number, dated)
        db.session.commit()

    try:
        run_with_retry(_op)
    except (OperationalError, StaleDataError):
        # FBR already issued the number; a concurrent edit must not lose it
        logger.warning("Sale %s accepted by FBR as %s kept changing underneath, writing directly", sale_id, invoice_number)
        run_with_retry(_direct)
    return SubmissionOutcome(
        status=OUTCOME_SYNCED,
        sale_id=sale_id,
        fbr_invoice_number=invoice_number,
        fbr_dated=dated,
    )


def submit_sale_for_compliance(
    sale_id: int,
    *,
    credentials_lookup=None,
    client_factory=None,
) -> SubmissionOutcome:
    """
    Build, validate and submit one sale to FBR.

    credentials_lookup(org_id) -> TenantCredentials | None and
    client_factory(credentials) -> client default to the stored tenant
    configuration and FbrClient.
    """
    credentials_lookup = credentials_lookup or get_active_credentials
    client_factory = client_factory or FbrClient.for_tenant

    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SubmissionError("Sale not found")

    if sale.fbr_status == FBR_STATUS_SYNCED:
        return SubmissionOutcome(
            status=OUTCOME_SYNCED,
            sale_id=sale.id,
            fbr_invoice_number=sale.fbr_invoice_number,
            fbr_dated=sale.fbr_dated,
        )

    open_item = open_item_for_sale(sale.id)
    if open_item is not None:
        return SubmissionOutcome(
            status=OUTCOME_QUEUED,
            sale_id=sale.id,
            error=open_item.error_message,
            queue_item_id=open_item.id,
        )

    credentials = credentials_lookup(sale.org_id)
    if credentials is None:
        return _fail(sale.id, NOT_CONFIGURED_MESSAGE)

    try:
        document = build_invoice(
            sale,
            tolerance_cents=current_app.config["FBR_RECONCILE_TOLERANCE_CENTS"],
        )
    except InvoiceBuildError as exc:
        return _fail(sale.id, f"Invoice data incomplete: {exc}", details=exc.details)

    payload = document.to_payload()
    client = client_factory(credentials)

    validation = client.validate(payload)
    if not validation.success:
        data_rejected = isinstance(validation, Rejected) and validation.is_data_rejection
        if validation.retryable and not data_rejected:
            return _queue(sale.id, payload, validation.error)
        return _fail(sale.id, validation.error)

    submission = client.submit(payload)
    if submission.success:
        return _synced(sale.id, submission.invoice_number, submission.dated)
    if not submission.retryable:
        return _fail(sale.id, submission.error)
    return _queue(sale.id, payload, submission.error)


def retry_failed_sales(
    org_id: int,
    sale_ids: list[int] | None = None,
    *,
    credentials_lookup=None,
    client_factory=None,
) -> list[SubmissionOutcome]:
    """
    Resubmit terminally failed sales of a tenant (after their data was fixed).

    Each sale is rebuilt from current data; old terminal queue items are
    left untouched for the audit trail.
    """
    query = db.session.query(Sale).filter(Sale.org_id == org_id, Sale.fbr_status == FBR_STATUS_FAILED)
    if sale_ids is not None:
        query = query.filter(Sale.id.in_(sale_ids))
    failed_ids = [sale.id for sale in query.order_by(Sale.id.asc()).all()]

    outcomes = []
    for sale_id in failed_ids:
        outcome = submit_sale_for_compliance(
            sale_id,
            credentials_lookup=credentials_lookup,
            client_factory=client_factory,
        )
        outcomes.append(outcome)
    logger.info(
        "Retried %s failed sale(s) for org %s: %s synced",
        len(outcomes), org_id, sum(1 for o in outcomes if o.status == OUTCOME_SYNCED),
    )
    return outcomes
