# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def compare_and_swap(model, row_id: int, *, column: str, expected, values: dict) -> bool:
    """
    Single-statement conditional update: UPDATE ... SET values
    WHERE id = row_id AND column = expected.

    Returns True only for the caller whose statement changed the row, so at
    most one of several concurrent callers wins. Commits immediately.
    """
    updated = (
        db.session.query(model)
        .filter(model.id == row_id, getattr(model, column) == expected)
        .update(values, synchronize_session=False)
    )
    db.session.commit()
    return updated == 1


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
