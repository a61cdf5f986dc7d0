# tests/api/test_returns_api.py
from __future__ import annotations

import httpx
import pytest

pytestmark = pytest.mark.grp_flow

USER_ID = 7


async def _overage_return(client: httpx.AsyncClient, seed) -> int:
    bolt = seed.items["bolt"]
    r = await client.post(
        "/inbounds/",
        json={"purchase_request_id": 12, "vendor_id": seed.vendor_id, "items": [{"item_id": bolt, "quantity": 10}]},
    )
    inbound = r.json()
    r = await client.post(
        f"/inbounds/{inbound['id']}/verify",
        json={"user_id": USER_ID, "items": [{"item_id": bolt, "received_qty": 13, "accepted_qty": 13}]},
    )
    lid = r.json()["inbound"]["items"][0]["id"]
    r = await client.post(f"/inbounds/items/{lid}/resolve", json={"user_id": USER_ID, "action": "REFUND"})
    assert r.status_code == 200, r.text
    return r.json()["return_id"]


async def test_return_lifecycle_over_http(client: httpx.AsyncClient, seed):
    rid = await _overage_return(client, seed)

    for step, status in (
        ("submit", "PENDING_APPROVAL"),
        ("approve", "APPROVED"),
        ("send", "SENT_TO_VENDOR"),
        ("complete", "COMPLETED"),
    ):
        r = await client.post(f"/returns/{rid}/{step}", json={"user_id": USER_ID})
        assert r.status_code == 200, (step, r.text)
        assert r.json()["status"] == status

    r = await client.get("/stock-cards/", params={"item_id": seed.items["bolt"], "movement_type": "RETURN_OUT"})
    cards = r.json()["data"]
    assert len(cards) == 1
    assert cards[0]["quantity_change"] == -3
    assert cards[0]["quantity_after"] == 10


async def test_reject_without_notes_is_422(client: httpx.AsyncClient, seed):
    rid = await _overage_return(client, seed)
    assert (await client.post(f"/returns/{rid}/submit", json={"user_id": USER_ID})).status_code == 200

    r = await client.post(f"/returns/{rid}/reject", json={"user_id": USER_ID})
    assert r.status_code == 422
    assert r.json()["detail"]["error_code"] == "VALIDATION_ERROR"


async def test_illegal_transition_is_409(client: httpx.AsyncClient, seed):
    rid = await _overage_return(client, seed)
    r = await client.post(f"/returns/{rid}/send", json={"user_id": USER_ID})
    assert r.status_code == 409
    assert r.json()["detail"]["context"]["status"] == "DRAFT"


async def test_manual_return_and_listing(client: httpx.AsyncClient, seed):
    r = await client.post(
        "/returns/",
        json={
            "user_id": USER_ID,
            "purchase_request_id": 12,
            "vendor_id": seed.vendor_id,
            "reason": "QUALITY_ISSUE",
            "items": [{"item_id": seed.items["nut"], "quantity": 2, "unit_price": "1.25"}],
        },
    )
    assert r.status_code == 201, r.text
    assert r.json()["total_amount"] == "2.50"

    r = await client.get("/returns/", params={"status": "DRAFT"})
    assert r.json()["pagination"]["total"] == 1
