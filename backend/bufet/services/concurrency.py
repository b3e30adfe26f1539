# Overview: Atomic-unit helpers; batch row locking and retry of a whole DB transaction.
"""
Every write that touches stock batches is one atomic unit:

- purchase: lock batches, quote, consume, append the debit, commit
- reconcile: lock batches, write the adjustment, collapse batches, commit
- add stock / deposit: insert rows, commit

Two guards stop two tills from selling the same units:
1. lock_for_update() holds the product's batch rows (PostgreSQL).
2. StockBatch.version_id_col fails the UPDATE of a batch another
   transaction already changed (StaleDataError). This is the guard on SQLite,
   which ignores FOR UPDATE.

run_with_retry() turns a lost race into a fresh attempt against current stock.
"""
from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """SELECT ... FOR UPDATE on the batch (or product) rows an operation is about to write."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one unit of work (a closure that ends in commit), rolling back on any failure.

    OperationalError (lock timeout, deadlock, "database is locked") and
    StaleDataError (batch version changed under us) are retried with
    exponential backoff. func must re-read products and batches on every
    call: a retried purchase re-quotes against the stock that is left and
    raises InsufficientStockError if it no longer fits.

    Business errors (ValidationError, NotFoundError, InsufficientStockError)
    roll back and propagate on the first attempt.
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
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
