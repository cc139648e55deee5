import json

import httpx
import pytest
from sqlalchemy import insert, select

from bestday.core.database import get_db_session, job_runs, order_items
from bestday.core.errors import ConfigurationError
from bestday.features.shipments import poller
from bestday.features.shipments.poller import STATUS_MAP, poll_shipments


def add_item(item_id, tracking, *, carrier="usps", status="shipped"):
    with get_db_session() as session:
        session.execute(
            insert(order_items).values(
                id=item_id,
                tracking_number=tracking,
                carrier=carrier,
                fulfillment_status=status,
            )
        )


def load_item(item_id):
    with get_db_session() as session:
        return session.execute(select(order_items).where(order_items.c.id == item_id)).first()


def tracking_response(tag):
    return httpx.Response(200, json={"data": {"tracking": {"tag": tag}}})


class FakeAfterShip:
    """Serves AfterShip responses keyed by tracking number and records calls."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        assert request.headers["aftership-api-key"] == "as-key"
        if request.method == "POST":
            body = json.loads(request.content)
            return self.routes.get(("POST", body["tracking"]["tracking_number"]), httpx.Response(201, json={}))
        tracking_number = request.url.path.rsplit("/", 1)[-1]
        return self.routes[tracking_number]


def run(fake, **kwargs):
    return poll_shipments(api_key="as-key", transport=httpx.MockTransport(fake), delay_seconds=0, **kwargs)


def test_delivered_tag_updates_status_and_timestamp(clock):
    add_item("item-1", "9400100000000000000001")
    fake = FakeAfterShip({"9400100000000000000001": tracking_response("Delivered")})

    result = run(fake, clock=clock)

    assert result == {
        "success": True,
        "checked": 1,
        "updated": 1,
        "results": [
            {"id": "item-1", "tracking": "9400100000000000000001", "old_status": "shipped", "new_status": "delivered"}
        ],
    }
    item = load_item("item-1")
    assert item.fulfillment_status == "delivered"
    assert item.delivered_at is not None
    assert fake.calls[0].url.path.endswith("/trackings/usps/9400100000000000000001")


def test_in_transit_moves_pending_to_shipped():
    add_item("item-1", "1Z999", carrier="UPS", status="pending")
    fake = FakeAfterShip({"1Z999": tracking_response("InTransit")})

    result = run(fake)

    assert result["updated"] == 1
    assert load_item("item-1").fulfillment_status == "shipped"
    assert "/trackings/ups/1Z999" in str(fake.calls[0].url)


def test_unchanged_or_unknown_tag_leaves_row():
    add_item("item-1", "AAA", status="shipped")
    add_item("item-2", "BBB", status="pending")
    fake = FakeAfterShip({"AAA": tracking_response("OutForDelivery"), "BBB": tracking_response("Mystery")})

    result = run(fake)

    assert result["updated"] == 0
    assert [r["new_status"] for r in result["results"]] == [None, None]
    assert load_item("item-2").fulfillment_status == "pending"


def test_missing_tracking_is_registered():
    add_item("item-1", "NEW123", carrier=None)
    fake = FakeAfterShip({"NEW123": httpx.Response(404, json={"meta": {"code": 4004}})})

    result = run(fake)

    entry = result["results"][0]
    assert entry["error"] == "Created in AfterShip, will check next run"
    assert fake.calls[0].url.path.endswith("/trackings/auto-detect/NEW123")
    create_call = fake.calls[1]
    assert create_call.method == "POST"
    assert json.loads(create_call.content) == {"tracking": {"tracking_number": "NEW123"}}


def test_failed_registration_and_api_errors_are_recorded():
    add_item("item-1", "NOPE")
    add_item("item-2", "BROKEN")
    fake = FakeAfterShip({
        "NOPE": httpx.Response(404),
        ("POST", "NOPE"): httpx.Response(422, json={}),
        "BROKEN": httpx.Response(500),
    })

    result = run(fake)

    errors = {r["id"]: r["error"] for r in result["results"]}
    assert errors == {"item-1": "Failed to create: 422", "item-2": "API error: 500"}
    assert result["checked"] == 2
    assert result["updated"] == 0


def test_item_failure_does_not_stop_run():
    add_item("item-1", "TIMEOUT")
    add_item("item-2", "OK")

    def handler(request):
        if request.url.path.endswith("TIMEOUT"):
            raise httpx.ConnectTimeout("timed out", request=request)
        return tracking_response("Delivered")

    result = run(handler)

    assert result["results"][0]["error"] == "timed out"
    assert result["results"][1]["new_status"] == "delivered"
    assert result["updated"] == 1


def test_skips_test_tracking_and_final_items():
    add_item("item-1", "TEST")
    add_item("item-2", "", status="pending")
    add_item("item-3", "DONE", status="delivered")
    add_item("item-4", "CLOSED", status="completed")
    fake = FakeAfterShip({})

    result = run(fake)

    assert result["checked"] == 1
    assert result["results"] == []
    assert fake.calls == []


def test_missing_api_key_is_configuration_error(test_settings, monkeypatch):
    monkeypatch.setattr(test_settings, "AFTERSHIP_API_KEY", None)
    with pytest.raises(ConfigurationError):
        poll_shipments()


def test_run_is_recorded():
    add_item("item-1", "AAA")
    run(FakeAfterShip({"AAA": tracking_response("Delivered")}))

    with get_db_session() as session:
        runs = session.execute(select(job_runs)).fetchall()
    assert len(runs) == 1
    assert runs[0].job_name == "shipments.poll"
    assert json.loads(runs[0].stats_json) == {"checked": 1, "updated": 1}


def test_delay_between_calls():
    add_item("item-1", "AAA")
    add_item("item-2", "BBB")
    sleeps = []

    poll_shipments(
        api_key="as-key",
        transport=httpx.MockTransport(FakeAfterShip({"AAA": tracking_response("Pending"), "BBB": tracking_response("Pending")})),
        delay_seconds=0.2,
        sleep=sleeps.append,
    )

    assert sleeps == [0.2, 0.2]


def test_status_map_covers_carrier_tags():
    assert STATUS_MAP["Delivered"] == "delivered"
    for tag in ("InTransit", "OutForDelivery", "AvailableForPickup", "InfoReceived",
                "Pending", "AttemptFail", "Exception", "Expired"):
        assert STATUS_MAP[tag] == "shipped"


def test_admin_endpoint_requires_key_configuration(client, admin_key, test_settings, monkeypatch):
    monkeypatch.setattr(test_settings, "AFTERSHIP_API_KEY", None)

    resp = client.post("/v1/admin/shipments/poll", headers={"X-Admin-Key": admin_key})

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "not_configured"
    assert resp.json()["detail"] == "AfterShip API key not configured"


def test_admin_endpoint_runs_poll(client, admin_key, test_settings, monkeypatch):
    monkeypatch.setattr(test_settings, "AFTERSHIP_API_KEY", "as-key")
    add_item("item-1", "AAA")
    fake = FakeAfterShip({"AAA": tracking_response("Delivered")})
    real_client = poller.AfterShipClient
    monkeypatch.setattr(
        poller,
        "AfterShipClient",
        lambda api_key, transport=None: real_client(api_key, transport=httpx.MockTransport(fake)),
    )

    resp = client.post("/v1/admin/shipments/poll", headers={"X-Admin-Key": admin_key})

    assert resp.status_code == 200
    assert resp.json()["updated"] == 1


def test_malformed_body_is_recorded_and_run_continues():
    add_item("item-1", "T1")
    add_item("item-2", "T2")
    add_item("item-3", "T3")
    fake = FakeAfterShip({
        "T1": httpx.Response(200, json={"data": "maintenance"}),
        "T2": httpx.Response(200, json=["unexpected"]),
        "T3": tracking_response("Delivered"),
    })

    result = run(fake)

    assert result["updated"] == 1
    assert [r["new_status"] for r in result["results"]] == [None, None, "delivered"]
    assert load_item("item-3").fulfillment_status == "delivered"
    with get_db_session() as session:
        assert len(session.execute(select(job_runs)).fetchall()) == 1


def test_item_error_of_any_kind_does_not_stop_run(monkeypatch):
    add_item("item-1", "AAA")
    add_item("item-2", "BBB")
    real_tag = poller.tracking_tag

    def flaky_tag(response):
        if response.request.url.path.endswith("AAA"):
            raise AttributeError("'str' object has no attribute 'get'")
        return real_tag(response)

    monkeypatch.setattr(poller, "tracking_tag", flaky_tag)

    result = run(FakeAfterShip({"AAA": tracking_response("Delivered"), "BBB": tracking_response("Delivered")}))

    assert result["results"][0]["error"] == "'str' object has no attribute 'get'"
    assert result["results"][1]["new_status"] == "delivered"
    assert result["updated"] == 1
