"""
Bike-ride pledge reconciliation job.

Pending pledges whose card setup was started more than
PLEDGE_RECONCILE_AFTER_MINUTES ago are checked against their Stripe
SetupIntent and confirmed, failed or auto-cancelled. Writes a job_runs row.
"""
from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx
import stripe
from sqlalchemy import insert, select, update

from bestday.core.clock import Clock, as_utc, utc_now
from bestday.core.config import settings
from bestday.core.database import bike_ride_pledges, get_db_session, job_runs
from bestday.core.logging import log_event

JOB_NAME = "pledges.reconcile"
NOTIFY_TIMEOUT_SECONDS = 10

FAILED_INTENT_STATUSES = ("canceled", "requires_payment_method")

SetupIntentFetcher = Callable[[str, str], str]
Notifier = Callable[[str], None]


def fetch_setup_intent_status(setup_intent_id: str, api_key: str) -> str:
    """Return the SetupIntent status as reported by Stripe."""
    intent = stripe.SetupIntent.retrieve(setup_intent_id, api_key=api_key)
    return intent.status


def send_confirmation(pledge_id: str) -> None:
    """Ask the email service to send the pledge confirmation."""
    url = settings.PLEDGE_EMAIL_WEBHOOK_URL
    if not url:
        return
    response = httpx.post(
        url,
        json={"type": "confirmation", "pledge_id": pledge_id},
        timeout=NOTIFY_TIMEOUT_SECONDS,
    )
    response.raise_for_status()


def _stripe_key(mode: Optional[str]) -> Optional[str]:
    if mode == "live":
        return settings.STRIPE_SECRET_KEY_LIVE
    return settings.STRIPE_SECRET_KEY_TEST


def _set_status(pledge_id: str, status: str, error: Optional[str] = None) -> None:
    with get_db_session() as session:
        session.execute(
            update(bike_ride_pledges)
            .where(bike_ride_pledges.c.id == pledge_id)
            .values(charge_status=status, charge_error=error)
        )


class _Tally:
    def __init__(self):
        self.confirmed = 0
        self.failed = 0
        self.auto_cancelled = 0
        self.skipped = 0
        self.results: List[Dict[str, Any]] = []

    def add(self, pledge, action: str, *, stripe_status: Optional[str] = None, error: Optional[str] = None) -> None:
        if action == "confirmed":
            self.confirmed += 1
        elif action == "failed":
            self.failed += 1
        elif action == "auto_cancelled":
            self.auto_cancelled += 1
        else:
            self.skipped += 1

        entry: Dict[str, Any] = {
            "pledge_id": pledge.id,
            "pledger_email": pledge.pledger_email,
            "action": action,
        }
        if stripe_status:
            entry["stripe_status"] = stripe_status
        if error:
            entry["error"] = error
        self.results.append(entry)

    def summary(self, total: int) -> Dict[str, int]:
        return {
            "confirmed": self.confirmed,
            "failed": self.failed,
            "auto_cancelled": self.auto_cancelled,
            "skipped": self.skipped,
            "total_processed": total,
        }


def _reconcile_one(
    pledge,
    tally: _Tally,
    *,
    stale_cutoff: datetime,
    fetch_status: SetupIntentFetcher,
    notify: Notifier,
) -> None:
    is_stale = as_utc(pledge.created_at) < stale_cutoff

    if not pledge.stripe_setup_intent_id:
        if is_stale:
            _set_status(pledge.id, "cancelled", "No setup intent - auto-cancelled after 24h")
            tally.add(pledge, "auto_cancelled", error="No setup intent ID")
        else:
            tally.add(pledge, "skipped", error="No setup intent, too recent to cancel")
        return

    api_key = _stripe_key(pledge.stripe_mode)
    if not api_key:
        tally.add(pledge, "skipped", error=f"No Stripe {pledge.stripe_mode} key configured")
        return

    status = fetch_status(pledge.stripe_setup_intent_id, api_key)

    if status == "succeeded":
        _set_status(pledge.id, "confirmed")
        tally.add(pledge, "confirmed", stripe_status=status)
        try:
            notify(pledge.id)
        except Exception as e:
            # Best-effort; the pledge stays confirmed
            log_event("warning", "pledges.notify_failed", extra={"pledge_id": pledge.id, "error": str(e)})
    elif status in FAILED_INTENT_STATUSES:
        _set_status(pledge.id, "failed", f"Stripe SetupIntent {status}")
        tally.add(pledge, "failed", stripe_status=status)
    elif is_stale:
        _set_status(
            pledge.id,
            "cancelled",
            f"Stale pending (Stripe status: {status}) - auto-cancelled after 24h",
        )
        tally.add(pledge, "auto_cancelled", stripe_status=status)
    else:
        tally.add(pledge, "skipped", stripe_status=status)


def run_reconcile_job(
    *,
    clock: Optional[Clock] = None,
    fetch_status: SetupIntentFetcher = fetch_setup_intent_status,
    notify: Notifier = send_confirmation,
) -> Dict[str, Any]:
    now = utc_now(clock)
    reconcile_cutoff = now - timedelta(minutes=settings.PLEDGE_RECONCILE_AFTER_MINUTES)
    stale_cutoff = now - timedelta(hours=settings.PLEDGE_AUTO_CANCEL_AFTER_HOURS)

    with get_db_session() as session:
        pledges = session.execute(
            select(bike_ride_pledges)
            .where(bike_ride_pledges.c.charge_status == "pending")
            .where(bike_ride_pledges.c.created_at < reconcile_cutoff)
            .order_by(bike_ride_pledges.c.created_at.asc())
        ).fetchall()

    tally = _Tally()
    for pledge in pledges:
        try:
            _reconcile_one(pledge, tally, stale_cutoff=stale_cutoff, fetch_status=fetch_status, notify=notify)
        except Exception as e:
            # Recorded per pledge; the remaining pledges still run
            log_event("error", "pledges.reconcile_failed", extra={"pledge_id": pledge.id, "error": str(e)})
            tally.add(pledge, "error", error=str(e))

    summary = tally.summary(len(pledges))
    with get_db_session() as session:
        session.execute(
            insert(job_runs).values(
                job_name=JOB_NAME,
                started_at=now,
                finished_at=utc_now(clock),
                status="success",
                stats_json=json.dumps(summary),
            )
        )

    log_event("info", "pledges.reconciled", event_type="pledges.reconciled", extra=summary)
    return {"summary": summary, "results": tally.results}
