"""
Admin-only job triggers.

The polling jobs can run synchronously (for cron callers holding the
service key) or be enqueued onto the RQ queue.
"""
from typing import Dict

from fastapi import APIRouter, Depends

from bestday.core.admin_auth import AdminActor, require_admin
from bestday.core.logging import log_event
from bestday.features.jobs.queue import enqueue_job
from bestday.features.pledges.reconcile_job import run_reconcile_job
from bestday.features.shipments.poller import poll_shipments

router = APIRouter(prefix="/v1/admin", tags=["admin-jobs"])


@router.post("/shipments/poll")
def post_poll_shipments(actor: AdminActor = Depends(require_admin)) -> Dict:
    """Check all undelivered shipments against AfterShip."""
    return poll_shipments()


@router.post("/pledges/reconcile")
def post_reconcile_pledges(actor: AdminActor = Depends(require_admin)) -> Dict:
    """Confirm, fail or auto-cancel pending bike-ride pledges."""
    return run_reconcile_job()


@router.post("/jobs/{job_name}")
def post_enqueue_job(job_name: str, actor: AdminActor = Depends(require_admin)) -> Dict:
    job_id = enqueue_job(job_name)
    log_event(
        "info",
        "jobs.enqueued",
        user_id=actor.actor_id,
        event_type="jobs.enqueued",
        extra={"job_name": job_name, "job_id": job_id},
    )
    return {"success": True, "job_name": job_name, "job_id": job_id}
