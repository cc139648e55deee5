"""
Minimal AfterShip REST client (v4 trackings API).
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from bestday.core.config import settings

AFTERSHIP_TIMEOUT_SECONDS = 10


class AfterShipClient:
    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=(base_url or settings.AFTERSHIP_BASE_URL).rstrip("/"),
            headers={"aftership-api-key": api_key, "Content-Type": "application/json"},
            timeout=AFTERSHIP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def get_tracking(self, slug: str, tracking_number: str) -> httpx.Response:
        return self._client.get(f"/trackings/{slug}/{tracking_number}")

    def create_tracking(self, tracking_number: str, slug: Optional[str] = None) -> httpx.Response:
        tracking: Dict[str, Any] = {"tracking_number": tracking_number}
        if slug and slug != "auto-detect":
            tracking["slug"] = slug
        return self._client.post("/trackings", json={"tracking": tracking})

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AfterShipClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def tracking_tag(response: httpx.Response) -> Optional[str]:
    """Extract data.tracking.tag from a tracking response body."""
    body = response.json()
    data = body.get("data") if isinstance(body, dict) else None
    tracking = data.get("tracking") if isinstance(data, dict) else None
    if not isinstance(tracking, dict):
        return None
    return tracking.get("tag")
