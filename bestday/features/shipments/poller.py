"""
Shipment status polling.

Checks every undelivered order item with a tracking number against
AfterShip and moves its fulfillment_status forward.
"""
from __future__ import annotations

import json
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy import and_, insert, select, update

from bestday.core.clock import Clock, utc_now
from bestday.core.config import settings
from bestday.core.database import get_db_session, job_runs, order_items
from bestday.core.errors import ConfigurationError
from bestday.core.logging import log_event
from bestday.features.shipments.aftership import AfterShipClient, tracking_tag

JOB_NAME = "shipments.poll"

# AfterShip tag -> order_items.fulfillment_status
STATUS_MAP = {
    "Delivered": "delivered",
    "InTransit": "shipped",
    "OutForDelivery": "shipped",
    "AvailableForPickup": "shipped",
    "InfoReceived": "shipped",
    "Pending": "shipped",
    "AttemptFail": "shipped",
    "Exception": "shipped",
    "Expired": "shipped",
}

FINAL_STATUSES = ("delivered", "completed")


def _pending_items() -> List[Any]:
    with get_db_session() as session:
        return session.execute(
            select(
                order_items.c.id,
                order_items.c.tracking_number,
                order_items.c.carrier,
                order_items.c.fulfillment_status,
            ).where(
                and_(
                    order_items.c.tracking_number.is_not(None),
                    order_items.c.tracking_number != "",
                    order_items.c.fulfillment_status.not_in(FINAL_STATUSES),
                )
            ).order_by(order_items.c.created_at.asc(), order_items.c.id.asc())
        ).fetchall()


def _result(item, new_status: Optional[str] = None, error: Optional[str] = None) -> Dict[str, Any]:
    entry = {
        "id": item.id,
        "tracking": item.tracking_number,
        "old_status": item.fulfillment_status,
        "new_status": new_status,
    }
    if error:
        entry["error"] = error
    return entry


def _check_item(client: AfterShipClient, item, now: datetime) -> Dict[str, Any]:
    slug = (item.carrier or "").lower() or "auto-detect"
    response = client.get_tracking(slug, item.tracking_number)

    if response.status_code == 404:
        created = client.create_tracking(item.tracking_number, slug)
        if created.is_success:
            log_event("info", "shipments.tracking_created", extra={"order_item_id": item.id})
            return _result(item, error="Created in AfterShip, will check next run")
        return _result(item, error=f"Failed to create: {created.status_code}")

    if not response.is_success:
        return _result(item, error=f"API error: {response.status_code}")

    tag = tracking_tag(response)
    new_status = STATUS_MAP.get(tag)
    if not new_status or new_status == item.fulfillment_status:
        return _result(item)

    values: Dict[str, Any] = {"fulfillment_status": new_status}
    if new_status == "delivered":
        values["delivered_at"] = now
    with get_db_session() as session:
        session.execute(update(order_items).where(order_items.c.id == item.id).values(**values))

    log_event(
        "info",
        "shipments.item_updated",
        event_type="shipments.item_updated",
        extra={"order_item_id": item.id, "old_status": item.fulfillment_status, "new_status": new_status},
    )
    return _result(item, new_status=new_status)


def poll_shipments(
    *,
    api_key: Optional[str] = None,
    transport: Optional[httpx.BaseTransport] = None,
    delay_seconds: Optional[float] = None,
    clock: Optional[Clock] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Any]:
    """
    Poll AfterShip for all pending shipments.

    Per-item failures are recorded in the results and never stop the run.

    Raises:
        ConfigurationError: AFTERSHIP_API_KEY is not set
    """
    api_key = api_key or settings.AFTERSHIP_API_KEY
    if not api_key:
        log_event("error", "shipments.not_configured", error_code=ConfigurationError.code)
        raise ConfigurationError("AfterShip API key not configured")

    delay = settings.AFTERSHIP_REQUEST_DELAY_SECONDS if delay_seconds is None else delay_seconds
    started_at = utc_now(clock)
    items = _pending_items()
    results: List[Dict[str, Any]] = []
    updated = 0

    with AfterShipClient(api_key, transport=transport) as client:
        for item in items:
            if item.tracking_number.lower() == "test":
                continue
            try:
                entry = _check_item(client, item, utc_now(clock))
            except Exception as e:
                # Recorded per item; the remaining items still run
                log_event("warning", "shipments.item_failed", extra={"order_item_id": item.id, "error": str(e)})
                entry = _result(item, error=str(e))
            results.append(entry)
            if entry["new_status"]:
                updated += 1
            if delay > 0:
                sleep(delay)

    summary = {"checked": len(items), "updated": updated}
    _record_run(started_at, utc_now(clock), summary)
    log_event("info", "shipments.poll_complete", event_type="shipments.poll_complete", extra=summary)

    return {"success": True, "checked": len(items), "updated": updated, "results": results}


def _record_run(started_at: datetime, finished_at: datetime, stats: Dict[str, Any]) -> None:
    with get_db_session() as session:
        session.execute(
            insert(job_runs).values(
                job_name=JOB_NAME,
                started_at=started_at,
                finished_at=finished_at,
                status="success",
                stats_json=json.dumps(stats),
            )
        )
