from datetime import timedelta

import httpx
import pytest

from app.api import deps
from app.db.models import ItemStatus, utcnow
from app.db.session import get_session
from app.main import app
from app.services.orders import OrderService
from app.services.review import ReviewService
from app.services.watchlist import WatchlistService

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}


def _as(user_id: str) -> dict:
    return {"X-User-Id": user_id}


@pytest.fixture
async def client(session_factory, notifier, auction):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_auction_service] = lambda: auction
    app.dependency_overrides[deps.get_review_service] = lambda: ReviewService(session_factory, notifier)
    app.dependency_overrides[deps.get_watchlist_service] = lambda: WatchlistService(session_factory)
    app.dependency_overrides[deps.get_order_service] = lambda: OrderService(session_factory, notifier)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _live_item(store, **overrides):
    now = utcnow()
    fields = dict(starts_at=now - timedelta(hours=1), ends_at=now + timedelta(hours=1))
    fields.update(overrides)
    return await store.add_item(**fields)


async def test_bid_requires_identity(client, store):
    item = await _live_item(store)
    r = await client.post(f"/api/v1/items/{item.id}/bid", json={"amount": 110000})
    assert r.status_code == 401


async def test_bid_success_and_error_mapping(client, store):
    item = await _live_item(store)

    low = await client.post(f"/api/v1/items/{item.id}/bid", json={"amount": 105000}, headers=_as("bidder-a"))
    assert low.status_code == 400
    assert low.json()["detail"] == {"code": "BID_TOO_LOW", "message": "최소 입찰가는 110,000원입니다"}

    own = await client.post(f"/api/v1/items/{item.id}/bid", json={"amount": 110000}, headers=_as("seller-1"))
    assert own.status_code == 403

    missing = await client.post("/api/v1/items/9999/bid", json={"amount": 110000}, headers=_as("bidder-a"))
    assert missing.status_code == 404

    ok = await client.post(f"/api/v1/items/{item.id}/bid", json={"amount": 110000}, headers=_as("bidder-a"))
    assert ok.status_code == 200
    body = ok.json()
    assert body["status"] == "success"
    assert body["data"]["item"]["current_price"] == 110000
    assert body["data"]["bid"]["is_winning"] is True


async def test_item_detail_hides_reserve(client, store):
    item = await _live_item(store, reserve_price=500000)
    r = await client.get(f"/api/v1/items/{item.id}")
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["minimum_bid"] == 110000
    assert data["item"]["has_reserve"] is True
    assert "reserve_price" not in data["item"]


async def test_list_items_filters_by_status(client, store):
    await _live_item(store, title="라이브 흑송")
    await _live_item(store, title="예정 진백", status=ItemStatus.SCHEDULED)
    r = await client.get("/api/v1/items", params={"status": "LIVE"})
    data = r.json()["data"]
    assert [i["title"] for i in data["items"]] == ["라이브 흑송"]
    assert data["pagination"]["total"] == 1


async def test_buy_now_endpoint(client, store):
    item = await _live_item(store, buy_now_price=2000000)
    r = await client.post(f"/api/v1/items/{item.id}/buy-now", headers=_as("buyer-1"))
    assert r.status_code == 200
    order = r.json()["data"]["order"]
    assert order["total_amount"] == 2140000

    again = await client.post(f"/api/v1/items/{item.id}/buy-now", headers=_as("buyer-2"))
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "INVALID_STATE"

    seen = await client.get(f"/api/v1/orders/{order['order_number']}", headers=_as("buyer-1"))
    assert seen.status_code == 200
    hidden = await client.get(f"/api/v1/orders/{order['order_number']}", headers=_as("stranger"))
    assert hidden.status_code == 403


async def test_admin_review_flow(client):
    now = utcnow()
    payload = {
        "title": "해송 반현애",
        "species": "해송",
        "start_price": 200000,
        "bid_step": 10000,
        "starts_at": (now + timedelta(hours=1)).isoformat(),
        "ends_at": (now + timedelta(days=2)).isoformat(),
    }
    created = await client.post("/api/v1/items", json=payload, headers=_as("seller-9"))
    assert created.status_code == 201
    item_id = created.json()["data"]["id"]
    assert created.json()["data"]["status"] == "PENDING_REVIEW"

    forbidden = await client.post(f"/api/v1/admin/items/{item_id}/approve", headers=_as("seller-9"))
    assert forbidden.status_code == 403

    approved = await client.post(f"/api/v1/admin/items/{item_id}/approve", headers=ADMIN)
    assert approved.json()["data"]["status"] == "SCHEDULED"

    reject = await client.post(f"/api/v1/admin/items/{item_id}/reject", json={"reason": "중복"}, headers=ADMIN)
    assert reject.status_code == 409

    inbox = await client.get("/api/v1/notifications", headers=_as("seller-9"))
    notes = inbox.json()["data"]
    assert notes[0]["type"] == "ADMIN_MESSAGE"
    read = await client.post(f"/api/v1/notifications/{notes[0]['id']}/read", headers=_as("seller-9"))
    assert read.status_code == 200
    unread = await client.get("/api/v1/notifications", params={"unread_only": True}, headers=_as("seller-9"))
    assert unread.json()["data"] == []


async def test_invalid_item_payload_is_422(client):
    r = await client.post("/api/v1/items", json={"title": "x"}, headers=_as("seller-9"))
    assert r.status_code == 422


async def test_watchlist_endpoints(client, store):
    item = await _live_item(store)
    added = await client.post(f"/api/v1/items/{item.id}/watchlist", headers=_as("user-1"))
    assert added.status_code == 200
    dup = await client.post(f"/api/v1/items/{item.id}/watchlist", headers=_as("user-1"))
    assert dup.status_code == 400
    mine = await client.get("/api/v1/watchlist", headers=_as("user-1"))
    assert [i["id"] for i in mine.json()["data"]] == [item.id]
    removed = await client.delete(f"/api/v1/items/{item.id}/watchlist", headers=_as("user-1"))
    assert removed.status_code == 200


async def test_sweep_endpoints_require_admin(client, store):
    await _live_item(store, ends_at=utcnow() - timedelta(seconds=1))
    assert (await client.post("/api/v1/admin/sweeps/end", headers=_as("user-1"))).status_code == 403
    r = await client.post("/api/v1/admin/sweeps/end", headers=ADMIN)
    assert r.json()["data"] == {"ended": 1}


async def test_list_items_price_range_and_search(client, store):
    await _live_item(store, title="흑송 모양목", species="흑송", current_price=150000)
    await _live_item(store, title="소품 진백", species="진백", description="사리 작업 완료", current_price=300000)
    await _live_item(store, title="단풍 쌍간", species="단풍", current_price=500000)

    async def titles(**params):
        r = await client.get("/api/v1/items", params={"sort": "price_asc", **params})
        data = r.json()["data"]
        assert data["pagination"]["total"] == len(data["items"])
        return [i["title"] for i in data["items"]]

    assert await titles(min_price=200000) == ["소품 진백", "단풍 쌍간"]
    assert await titles(max_price=300000) == ["흑송 모양목", "소품 진백"]
    assert await titles(min_price=200000, max_price=400000) == ["소품 진백"]
    assert await titles(search="사리") == ["소품 진백"]
    assert await titles(search="단풍") == ["단풍 쌍간"]
    assert await titles(search="흑송", max_price=100000) == []


async def test_admin_item_queue(client, store):
    await _live_item(store, title="라이브 흑송")
    await _live_item(store, title="검수 대기 진백", status=ItemStatus.PENDING_REVIEW, reserve_price=400000)
    await _live_item(store, title="취소 해송", status=ItemStatus.CANCELED)

    assert (await client.get("/api/v1/admin/items", headers=_as("user-1"))).status_code == 403

    everything = (await client.get("/api/v1/admin/items", headers=ADMIN)).json()["data"]
    assert everything["pagination"]["total"] == 3

    pending = (await client.get("/api/v1/admin/items", params={"status": "PENDING_REVIEW"}, headers=ADMIN)).json()["data"]
    assert [i["title"] for i in pending["items"]] == ["검수 대기 진백"]
    assert pending["items"][0]["reserve_price"] == 400000

    found = (await client.get("/api/v1/admin/items", params={"search": "해송"}, headers=ADMIN)).json()["data"]
    assert [i["title"] for i in found["items"]] == ["취소 해송"]

    bad = await client.get("/api/v1/admin/items", params={"status": "SOLD"}, headers=ADMIN)
    assert bad.status_code == 400


async def test_admin_dashboard(client, store):
    await _live_item(store, status=ItemStatus.PENDING_REVIEW)
    pending = await _live_item(store, status=ItemStatus.PENDING_REVIEW)
    paid = await _live_item(store, buy_now_price=2000000)
    await _live_item(store, buy_now_price=1000000)

    await client.post(f"/api/v1/admin/items/{pending.id}/approve", headers=ADMIN)
    order = (await client.post(f"/api/v1/items/{paid.id}/buy-now", headers=_as("buyer-1"))).json()["data"]["order"]
    await client.post(f"/api/v1/orders/{order['order_number']}/confirm", headers=ADMIN)

    assert (await client.get("/api/v1/admin/dashboard", headers=_as("user-1"))).status_code == 403
    stats = (await client.get("/api/v1/admin/dashboard", headers=ADMIN)).json()["data"]
    assert stats["total_items"] == 4
    assert stats["live_auctions"] == 1
    assert stats["pending_reviews"] == 1
    assert stats["total_revenue"] == 2140000
    assert [(a["action"], a["target_item_id"]) for a in stats["recent_activity"]] == [("ITEM_APPROVED", pending.id)]


async def test_clear_watchlist(client, store):
    first = await _live_item(store)
    second = await _live_item(store)
    for item in (first, second):
        await client.post(f"/api/v1/items/{item.id}/watchlist", headers=_as("user-1"))
    await client.post(f"/api/v1/items/{first.id}/watchlist", headers=_as("user-2"))

    cleared = await client.delete("/api/v1/watchlist", headers=_as("user-1"))
    assert cleared.json()["data"] == {"removed": 2}
    assert (await client.get("/api/v1/watchlist", headers=_as("user-1"))).json()["data"] == []
    assert len((await client.get("/api/v1/watchlist", headers=_as("user-2"))).json()["data"]) == 1
