# Overview: Debt reminder sweep; emails every user below the debt threshold.

from __future__ import annotations

import logging

from flask import current_app

from . import ledger_service, notification_service

logger = logging.getLogger(__name__)


def send_debt_reminders(threshold_cents: int | None = None) -> list[dict]:
    """
    Email each user whose balance is strictly below threshold_cents.

    Best-effort per recipient: a failed send is logged and reported in the
    result, the remaining debtors are still processed. Scheduling is left to
    cron (`flask reminders send`).
    """
    if threshold_cents is None:
        threshold_cents = current_app.config.get("DEBT_REMINDER_THRESHOLD_CENTS", -500)

    debtors = ledger_service.list_debtors(below_cents=threshold_cents)
    logger.info("Found %d debtors with balance below %d cents", len(debtors), threshold_cents)

    results = []
    for debtor in debtors:
        row = {"email": debtor["email"], "balance_cents": debtor["balance_cents"]}
        try:
            notification_service.send_notification(
                notification_service.KIND_REMINDER,
                debtor["email"],
                {"name": debtor["name"], "balance_cents": debtor["balance_cents"]},
            )
        except notification_service.NotificationError as exc:
            logger.exception("Failed to send reminder to %s", debtor["email"])
            row.update(success=False, error=str(exc))
        else:
            row["success"] = True
        results.append(row)

    sent = sum(1 for r in results if r["success"])
    logger.info("Reminder sweep completed: %d sent, %d failed", sent, len(results) - sent)
    return results
