"""
FBR retry queue and background worker.

DELIVERY MODEL: polling, at-least-once. A scheduled job calls
process_retry_queue(); each pass takes up to batch_size pending items,
oldest first, and re-submits the stored document (validation already
passed when the item was queued).

CONCURRENCY: an item is only processed by the worker that wins the
pending -> processing compare-and-swap, so overlapping passes never
double-submit. Items left in processing by a crashed pass are released
back to pending once they are older than FBR_PROCESSING_STALE_MINUTES.

RETRY BUDGET: every failed attempt increments retry_count; reaching
max_retries (or a non-retryable failure such as a refused token) makes
the item terminal and marks the sale failed with the last FBR error.
There is no backoff beyond the schedule interval.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import FbrQueueItem, Sale
from ..models.fbr import (
    QUEUE_COMPLETED,
    QUEUE_FAILED,
    QUEUE_OPEN_STATUSES,
    QUEUE_PENDING,
    QUEUE_PROCESSING,
)
from ..time_utils import to_utc_z, utcnow
from .concurrency import compare_and_swap, run_with_retry
from .fbr_client import FbrClient
from .fbr_config_service import get_active_credentials, get_config
from .fbr_sale_state import force_sale_synced, mark_sale_failed, mark_sale_queued, mark_sale_synced


logger = logging.getLogger(__name__)

OUTCOME_COMPLETED = "completed"
OUTCOME_RETRY = "retry"
OUTCOME_FAILED = "failed"


@dataclass
class QueueRunSummary:
    released: int = 0
    selected: int = 0
    skipped: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0

    def record(self, outcome: str) -> None:
        if outcome == OUTCOME_COMPLETED:
            self.completed += 1
        elif outcome == OUTCOME_RETRY:
            self.retried += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return asdict(self)


def enqueue(sale: Sale, payload: dict, error_message: str | None, *, max_retries: int | None = None) -> FbrQueueItem:
    """Queue a built document for retry and flag the sale as pending. Caller commits."""
    if max_retries is None:
        max_retries = current_app.config["FBR_MAX_RETRIES"]
    now = utcnow()
    item = FbrQueueItem(
        org_id=sale.org_id,
        sale_id=sale.id,
        invoice_payload=payload,
        status=QUEUE_PENDING,
        retry_count=0,
        max_retries=max_retries,
        error_message=error_message,
        created_at=now,
        updated_at=now,
    )
    db.session.add(item)
    mark_sale_queued(sale, error_message)
    db.session.flush()
    logger.info("Sale %s queued for FBR retry (queue item %s): %s", sale.id, item.id, error_message)
    return item


def open_item_for_sale(sale_id: int) -> FbrQueueItem | None:
    return (
        db.session.query(FbrQueueItem)
        .filter(FbrQueueItem.sale_id == sale_id, FbrQueueItem.status.in_(QUEUE_OPEN_STATUSES))
        .order_by(FbrQueueItem.created_at.asc(), FbrQueueItem.id.asc())
        .first()
    )


def claim_item(item_id: int) -> bool:
    """Atomically move an item pending -> processing. False if another worker got it first."""
    return compare_and_swap(
        FbrQueueItem,
        item_id,
        column="status",
        expected=QUEUE_PENDING,
        values={"status": QUEUE_PROCESSING, "updated_at": utcnow()},
    )


def select_pending(batch_size: int, *, before=None) -> list[FbrQueueItem]:
    query = db.session.query(FbrQueueItem).filter(
        FbrQueueItem.status == QUEUE_PENDING,
        FbrQueueItem.retry_count < FbrQueueItem.max_retries,
    )
    if before is not None:
        query = query.filter(FbrQueueItem.updated_at <= before)
    return (
        query.order_by(FbrQueueItem.created_at.asc(), FbrQueueItem.id.asc())
        .limit(batch_size)
        .all()
    )


def release_stale_items(*, older_than: timedelta) -> int:
    """Return items stuck in processing (crashed worker) to pending."""
    cutoff = utcnow() - older_than
    released = (
        db.session.query(FbrQueueItem)
        .filter(FbrQueueItem.status == QUEUE_PROCESSING, FbrQueueItem.updated_at < cutoff)
        .update({"status": QUEUE_PENDING, "updated_at": utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    if released:
        logger.warning("Released %s stale FBR queue item(s) back to pending", released)
    return released


def _record_failure(item: FbrQueueItem, error: str | None, *, retryable: bool) -> str:
    item.retry_count = min(item.retry_count + 1, item.max_retries)
    item.error_message = error
    item.updated_at = utcnow()

    sale = item.sale
    if not retryable or item.retry_count >= item.max_retries:
        item.status = QUEUE_FAILED
        if sale is not None:
            mark_sale_failed(sale, error)
        db.session.commit()
        logger.warning(
            "FBR queue item %s failed permanently after %s attempt(s): %s",
            item.id, item.retry_count, error,
        )
        return OUTCOME_FAILED

    item.status = QUEUE_PENDING
    if sale is not None:
        mark_sale_queued(sale, error)
    db.session.commit()
    logger.info(
        "FBR queue item %s attempt %s/%s failed, will retry: %s",
        item.id, item.retry_count, item.max_retries, error,
    )
    return OUTCOME_RETRY


def _submit_claimed(item: FbrQueueItem, credentials_lookup, client_factory):
    credentials = credentials_lookup(item.org_id)
    client = client_factory(credentials)
    return client.submit(item.invoice_payload)


def _complete_item(item_id: int, sale_id: int | None, invoice_number: str | None, dated: str | None) -> str:
    """
    Persist an accepted submission. FBR has issued the invoice number at
    this point, so a lost optimistic-lock race is retried and then written
    directly rather than recorded as a failed attempt.
    """
    def _op():
        item = db.session.get(FbrQueueItem, item_id)
        item.status = QUEUE_COMPLETED
        item.error_message = None
        item.updated_at = utcnow()
        sale = db.session.get(Sale, sale_id) if sale_id is not None else None
        if sale is not None:
            mark_sale_synced(sale, invoice_number, dated)
        db.session.commit()

    def _direct():
        db.session.query(FbrQueueItem).filter(FbrQueueItem.id == item_id).update(
            {"status": QUEUE_COMPLETED, "error_message": None, "updated_at": utcnow()},
            synchronize_session=False,
        )
        if sale_id is not None:
            force_sale_synced(sale_id, invoice_number, dated)
        db.session.commit()

    try:
        run_with_retry(_op)
    except (OperationalError, StaleDataError):
        logger.warning(
            "FBR queue item %s accepted as %s but sale %s kept changing underneath, writing directly",
            item_id, invoice_number, sale_id,
        )
        run_with_retry(_direct)
    return OUTCOME_COMPLETED


def process_retry_queue(
    batch_size: int | None = None,
    *,
    credentials_lookup=None,
    client_factory=None,
) -> QueueRunSummary:
    """
    One worker pass over the retry queue.

    credentials_lookup(org_id) -> TenantCredentials | None and
    client_factory(credentials) -> client default to the stored tenant
    configuration and FbrClient.
    """
    if batch_size is None:
        batch_size = current_app.config["FBR_QUEUE_BATCH_SIZE"]
    credentials_lookup = credentials_lookup or get_active_credentials
    client_factory = client_factory or FbrClient.for_tenant

    summary = QueueRunSummary()
    summary.released = release_stale_items(
        older_than=timedelta(minutes=current_app.config["FBR_PROCESSING_STALE_MINUTES"])
    )

    item_ids = [item.id for item in select_pending(batch_size, before=utcnow())]
    summary.selected = len(item_ids)

    for item_id in item_ids:
        if not claim_item(item_id):
            summary.skipped += 1
            logger.info("FBR queue item %s claimed by another worker, skipping", item_id)
            continue

        try:
            item = db.session.get(FbrQueueItem, item_id)
            sale_id = item.sale_id
            result = _submit_claimed(item, credentials_lookup, client_factory)
            if not result.success:
                summary.record(_record_failure(item, result.error, retryable=result.retryable))
                continue
        except Exception as exc:
            db.session.rollback()
            logger.exception("FBR queue processing error for item %s", item_id)
            try:
                item = db.session.get(FbrQueueItem, item_id)
                summary.record(_record_failure(item, f"FBR queue processing error: {exc}", retryable=True))
            except Exception:
                # Item stays in processing; release_stale_items() recovers it
                db.session.rollback()
                logger.exception("Could not record failure for FBR queue item %s", item_id)
                summary.skipped += 1
            continue

        # Accepted by FBR: never counted as a failed attempt from here on
        try:
            summary.record(_complete_item(item_id, sale_id, result.invoice_number, result.dated))
        except Exception:
            db.session.rollback()
            logger.exception(
                "FBR accepted queue item %s as %s but the result could not be saved",
                item_id, result.invoice_number,
            )
            summary.skipped += 1

    logger.info("FBR queue pass finished: %s", summary.to_dict())
    return summary


def queue_statistics(org_id: int) -> dict:
    """Counts of queue items and sales by status for one tenant."""
    queue_rows = (
        db.session.query(FbrQueueItem.status, func.count(FbrQueueItem.id))
        .filter(FbrQueueItem.org_id == org_id)
        .group_by(FbrQueueItem.status)
        .all()
    )
    sale_rows = (
        db.session.query(Sale.fbr_status, func.count(Sale.id))
        .filter(Sale.org_id == org_id)
        .group_by(Sale.fbr_status)
        .all()
    )

    queue = {status: 0 for status in (QUEUE_PENDING, QUEUE_PROCESSING, QUEUE_COMPLETED, QUEUE_FAILED)}
    queue.update({status: count for status, count in queue_rows})
    sales = {"pending": 0, "synced": 0, "failed": 0}
    sales.update({status: count for status, count in sale_rows})

    total_sales = sum(sales.values())
    config = get_config(org_id)
    return {
        "org_id": org_id,
        "queue": queue,
        "sales": sales,
        "sync_rate": round(sales["synced"] / total_sales * 100, 2) if total_sales else 0,
        "last_sync_at": to_utc_z(config.last_sync_at) if config and config.last_sync_at else None,
    }
