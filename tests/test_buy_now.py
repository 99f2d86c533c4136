from datetime import timedelta

from app.db.models import ItemStatus, NotificationType, PaymentStatus
from app.services.errors import ErrorKind
from conftest import NOW


async def test_buy_now_ends_auction_and_creates_order(auction, store):
    item = await store.add_item(buy_now_price=2000000)

    result = await auction.buy_now(item.id, "buyer-1", now=NOW)
    assert result.ok
    bid, order = result.value.bid, result.value.order
    assert bid.amount == 2000000
    assert bid.is_winning is True
    assert order.final_price == 2000000
    assert order.buyer_premium == 140000
    assert order.seller_fee == 200000
    assert order.total_amount == 2140000
    assert order.payment_status == PaymentStatus.PENDING

    ended = await store.item(item.id)
    assert ended.status == ItemStatus.ENDED
    assert ended.current_price == 2000000

    won = await store.notifications("buyer-1")
    assert won[0].type == NotificationType.AUCTION_WON
    assert won[0].data["order_number"] == order.order_number


async def test_buy_now_bypasses_increment_and_replaces_leader(auction, store):
    item = await store.add_item(start_price=100000, buy_now_price=115000)
    await auction.process_bid(item.id, "bidder-a", 110000, now=NOW)

    result = await auction.buy_now(item.id, "buyer-1", now=NOW)
    assert result.ok

    bids = await store.bids(item.id)
    assert [(b.bidder_id, b.is_winning) for b in bids] == [("bidder-a", False), ("buyer-1", True)]

    lost = await store.notifications("bidder-a")
    assert lost[-1].type == NotificationType.AUCTION_LOST
    assert lost[-1].data["reason"] == "BUY_NOW"


async def test_buy_now_preconditions(auction, store):
    missing = await auction.buy_now(9999, "buyer-1", now=NOW)
    assert missing.error.kind == ErrorKind.NOT_FOUND

    scheduled = await store.add_item(status=ItemStatus.SCHEDULED, buy_now_price=2000000)
    assert (await auction.buy_now(scheduled.id, "buyer-1", now=NOW)).error.kind == ErrorKind.INVALID_STATE

    no_price = await store.add_item()
    result = await auction.buy_now(no_price.id, "buyer-1", now=NOW)
    assert result.error.kind == ErrorKind.INVALID_STATE
    assert result.error.message == "즉시구매가 설정되지 않은 상품입니다"

    own = await store.add_item(seller_id="seller-1", buy_now_price=2000000)
    result = await auction.buy_now(own.id, "seller-1", now=NOW)
    assert result.error.kind == ErrorKind.FORBIDDEN
    assert (await store.item(own.id)).status == ItemStatus.LIVE
    assert await store.orders(own.id) == []


async def test_item_sold_by_buy_now_is_not_swept_again(auction, store):
    item = await store.add_item(buy_now_price=2000000, ends_at=NOW + timedelta(minutes=1))
    await auction.buy_now(item.id, "buyer-1", now=NOW)

    assert (await auction.end_expired_auctions(NOW + timedelta(hours=1))).value == 0
    assert len(await store.orders(item.id)) == 1

    second = await auction.buy_now(item.id, "buyer-2", now=NOW)
    assert second.error.kind == ErrorKind.INVALID_STATE

    late_bid = await auction.process_bid(item.id, "bidder-a", 3000000, now=NOW)
    assert late_bid.error.kind == ErrorKind.INVALID_STATE


async def test_buy_now_below_leading_bid_sells_at_buy_now_price(auction, store):
    item = await store.add_item(start_price=100000, bid_step=10000, buy_now_price=120000)
    assert (await auction.process_bid(item.id, "bidder-a", 150000, now=NOW)).ok

    result = await auction.buy_now(item.id, "buyer-1", now=NOW)
    assert result.value.order.final_price == 120000

    ended = await store.item(item.id)
    assert ended.current_price == 120000
    winners = [b.bidder_id for b in await store.bids(item.id) if b.is_winning]
    assert winners == ["buyer-1"]
