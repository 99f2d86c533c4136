# app/services/auction.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.logging import get_logger
from app.db import crud
from app.db.models import Bid, Item, ItemStatus, NotificationType, Order, PaymentStatus, utcnow
from app.services.errors import AuctionError, ErrorKind, ServiceResult, item_not_found
from app.services.notifier import Notifier
from app.services.pricing import extended_end, generate_order_number, minimum_bid, settle
from utils.helpers import format_price

logger: logging.Logger = get_logger(__name__)

REASON_RESERVE_NOT_MET = "RESERVE_NOT_MET"
REASON_NO_BIDS = "NO_BIDS"
REASON_BUY_NOW = "BUY_NOW"


@dataclass
class BidPlacement:
    bid: Bid
    item: Item
    extended: bool = False


@dataclass
class BuyNowResult:
    bid: Bid
    order: Order


@dataclass
class _Closing:
    """종료 스윕에서 한 상품을 닫은 결과 (커밋 후 알림 발송용)"""
    item: Item
    order: Optional[Order] = None
    winner_id: Optional[str] = None
    reason: Optional[str] = None
    watcher_ids: List[str] = field(default_factory=list)


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _validate_bid_input(amount: int, is_proxy: bool, max_proxy_amount: Optional[int]) -> None:
    if amount is None or amount <= 0:
        raise AuctionError(ErrorKind.VALIDATION, "입찰가는 0보다 커야 합니다")
    if is_proxy:
        if max_proxy_amount is None:
            raise AuctionError(ErrorKind.VALIDATION, "자동 입찰은 최대 입찰가가 필요합니다")
        if max_proxy_amount < amount:
            raise AuctionError(ErrorKind.VALIDATION, "최대 입찰가는 입찰가 이상이어야 합니다")


def _check_biddable(item: Optional[Item], bidder_id: str, now: datetime) -> Item:
    if item is None:
        raise item_not_found()
    if item.status != ItemStatus.LIVE:
        raise AuctionError(ErrorKind.INVALID_STATE, "진행 중인 경매가 아닙니다")
    if item.seller_id == bidder_id:
        raise AuctionError(ErrorKind.FORBIDDEN, "자신의 상품에는 입찰할 수 없습니다")
    if now > item.ends_at:
        raise AuctionError(ErrorKind.EXPIRED, "경매가 종료되었습니다")
    return item


def _unsold_reason(item: Item, highest: Optional[Bid]) -> Optional[str]:
    if highest is None:
        return REASON_NO_BIDS
    if item.reserve_price is not None and highest.amount < item.reserve_price:
        return REASON_RESERVE_NOT_MET
    return None


# ------------------------------------------------------------------------------
# Auction engine
# ------------------------------------------------------------------------------

class AuctionService:
    """
    경매 라이프사이클 엔진.

    - 상품 상태 전이 SCHEDULED → LIVE → ENDED
    - 입찰 검증/수락, 자동 연장
    - 종료 시 정산(구매자 수수료, 판매자 수수료, 주문 생성)

    모든 상태 변경은 상품 행에 대한 조건부 UPDATE(상태/현재가 전제)로 시작하는
    단일 트랜잭션에서 일어난다. 같은 상품에 대한 시작/종료/입찰/즉시구매는 이 조건부
    UPDATE 로 직렬화되고, 먼저 커밋한 쪽이 이긴다. 알림은 커밋 이후 별도로 저장된다.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        buyer_premium_rate: Optional[Decimal] = None,
        seller_fee_rate: Optional[Decimal] = None,
        claim_attempts: Optional[int] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.notifier = notifier
        self.buyer_premium_rate = buyer_premium_rate if buyer_premium_rate is not None else settings.BUYER_PREMIUM_RATE
        self.seller_fee_rate = seller_fee_rate if seller_fee_rate is not None else settings.SELLER_FEE_RATE
        self.claim_attempts = max(1, claim_attempts or settings.BID_CLAIM_ATTEMPTS)

    def _new_order(self, item: Item, buyer_id: str, final_price: int, now: datetime) -> Order:
        s = settle(final_price, self.buyer_premium_rate, self.seller_fee_rate)
        return Order(
            order_number=generate_order_number(now),
            item_id=item.id,
            buyer_id=buyer_id,
            final_price=s.final_price,
            buyer_premium=s.buyer_premium,
            seller_fee=s.seller_fee,
            total_amount=s.total_amount,
            payment_status=PaymentStatus.PENDING,
            created_at=now,
        )

    # --------------------------------------------------------------------------
    # 시작 스윕
    # --------------------------------------------------------------------------
    async def start_scheduled_auctions(self, now: Optional[datetime] = None) -> ServiceResult[int]:
        """
        starts_at 이 지난 SCHEDULED 상품을 LIVE 로 전환하고 관심 사용자에게 AUCTION_START 알림.

        - 상태 조건(SCHEDULED)이 UPDATE 에 포함되어 있어 재실행해도 중복 전환되지 않는다.

        Returns:
            전환된 상품 수
        """
        now = now or utcnow()
        async with self.session_factory() as session:
            due = await crud.list_item_ids_due(session, ItemStatus.SCHEDULED, now, "starts_at")

        started = 0
        for item_id in due:
            opened = await self._start_one(item_id, now)
            if opened is None:
                continue
            started += 1
            item, watcher_ids = opened
            logger.info("auction started item=%s watchers=%d", item.id, len(watcher_ids))
            await self.notifier.notify_many(
                watcher_ids,
                NotificationType.AUCTION_START,
                "경매 시작",
                f'관심 상품 "{item.title}"의 경매가 시작되었습니다.',
                {"item_id": item.id, "item_title": item.title},
            )
        return ServiceResult.success(started)

    async def _start_one(self, item_id: int, now: datetime) -> Optional[Tuple[Item, List[str]]]:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Item)
                    .where(Item.id == item_id, Item.status == ItemStatus.SCHEDULED, Item.starts_at <= now)
                    .values(status=ItemStatus.LIVE, current_price=Item.start_price, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None
                item = await crud.get_item(session, item_id)
                watcher_ids = await crud.list_watcher_ids(session, item_id)
        return item, watcher_ids

    # --------------------------------------------------------------------------
    # 종료 스윕
    # --------------------------------------------------------------------------
    async def end_expired_auctions(self, now: Optional[datetime] = None) -> ServiceResult[int]:
        """
        ends_at 이 지난 LIVE 상품을 ENDED 로 전환하고 정산

        1) 최고 입찰이 있고 (최저낙찰가 없음 또는 최고 입찰 >= 최저낙찰가) 이면 낙찰
        2) 상태는 결과와 무관하게 ENDED
        3) 낙찰: 주문(PENDING) 생성, 낙찰 입찰 표시, 낙찰자에게 AUCTION_WON
        4) 유찰: 관심 사용자에게 AUCTION_LOST (RESERVE_NOT_MET / NO_BIDS)

        Returns:
            전환된 상품 수
        """
        now = now or utcnow()
        async with self.session_factory() as session:
            due = await crud.list_item_ids_due(session, ItemStatus.LIVE, now, "ends_at")

        ended = 0
        for item_id in due:
            closing = await self._end_one(item_id, now)
            if closing is None:
                continue
            ended += 1
            await self._announce_closing(closing)
        return ServiceResult.success(ended)

    async def _end_one(self, item_id: int, now: datetime) -> Optional[_Closing]:
        async with self.session_factory() as session:
            async with session.begin():
                # 이 UPDATE 를 이긴 트랜잭션만 정산한다
                result = await session.execute(
                    update(Item)
                    .where(Item.id == item_id, Item.status == ItemStatus.LIVE, Item.ends_at <= now)
                    .values(status=ItemStatus.ENDED, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    return None

                item = await crud.get_item(session, item_id)
                highest = await crud.get_highest_bid(session, item_id)
                reason = _unsold_reason(item, highest)

                if reason is not None:
                    await crud.demote_winning_bids(session, item_id)
                    watcher_ids = await crud.list_watcher_ids(session, item_id)
                    return _Closing(item=item, reason=reason, watcher_ids=watcher_ids)

                await crud.demote_winning_bids(session, item_id, keep_bid_id=highest.id)
                highest.is_winning = True
                order = self._new_order(item, highest.bidder_id, highest.amount, now)
                session.add(order)
        return _Closing(item=item, order=order, winner_id=highest.bidder_id)

    async def _announce_closing(self, closing: _Closing) -> None:
        item = closing.item
        if closing.order is not None:
            logger.info(
                "auction sold item=%s buyer=%s final=%s order=%s",
                item.id, closing.winner_id, closing.order.final_price, closing.order.order_number,
            )
            await self.notifier.notify(
                closing.winner_id,
                NotificationType.AUCTION_WON,
                "낙찰 축하합니다!",
                f'"{item.title}" 낙찰을 축하합니다. 24시간 이내에 결제를 완료해주세요.',
                {
                    "item_id": item.id,
                    "item_title": item.title,
                    "final_price": closing.order.final_price,
                    "order_number": closing.order.order_number,
                },
            )
            return

        logger.info("auction unsold item=%s reason=%s", item.id, closing.reason)
        await self.notifier.notify_many(
            closing.watcher_ids,
            NotificationType.AUCTION_LOST,
            "경매 종료",
            f'"{item.title}" 경매가 유찰되었습니다.',
            {"item_id": item.id, "item_title": item.title, "reason": closing.reason},
        )

    # --------------------------------------------------------------------------
    # 입찰
    # --------------------------------------------------------------------------
    async def process_bid(
        self,
        item_id: int,
        bidder_id: str,
        amount: int,
        is_proxy: bool = False,
        max_proxy_amount: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult[BidPlacement]:
        """
        입찰 처리

        전제 조건 (순서대로):
            NOT_FOUND → INVALID_STATE(LIVE 아님) → FORBIDDEN(본인 상품) →
            EXPIRED(ends_at 경과) → BID_TOO_LOW(현재가 + 입찰 단위 미만)
            입력 오류(금액 <= 0, 자동 입찰 최대가 누락/부족)는 VALIDATION.

        효과 (원자적):
            입찰 생성(is_winning) → 이전 최고 입찰 해제 → 현재가 갱신 → 자동 연장

        동시에 들어온 입찰에 현재가가 바뀌었으면 새 현재가로 다시 검증한다.
        """
        now = now or utcnow()
        try:
            _validate_bid_input(amount, is_proxy, max_proxy_amount)
            placement, outbid_user = await self._place_bid(
                item_id, bidder_id, amount, is_proxy, max_proxy_amount, now
            )
        except AuctionError as e:
            logger.info(
                "bid rejected item=%s bidder=%s amount=%s kind=%s",
                item_id, bidder_id, amount, e.kind.value,
            )
            return ServiceResult.failure(e)

        item = placement.item
        logger.info(
            "bid accepted item=%s bidder=%s amount=%s ends_at=%s extended=%s",
            item.id, bidder_id, amount, item.ends_at.isoformat(), placement.extended,
        )
        if outbid_user is not None:
            await self.notifier.notify(
                outbid_user,
                NotificationType.OUTBID,
                "상위 입찰 발생",
                f'"{item.title}"에 더 높은 입찰({format_price(amount)})이 등록되었습니다.',
                {"item_id": item.id, "item_title": item.title, "current_price": amount},
            )
        return ServiceResult.success(placement)

    async def _place_bid(
        self,
        item_id: int,
        bidder_id: str,
        amount: int,
        is_proxy: bool,
        max_proxy_amount: Optional[int],
        now: datetime,
    ) -> Tuple[BidPlacement, Optional[str]]:
        async with self.session_factory() as session:
            async with session.begin():
                item = await crud.get_item(session, item_id, for_update=True)
                for attempt in range(1, self.claim_attempts + 1):
                    item = _check_biddable(item, bidder_id, now)
                    minimum = minimum_bid(item.current_price, item.bid_step)
                    if amount < minimum:
                        raise AuctionError(ErrorKind.BID_TOO_LOW, f"최소 입찰가는 {format_price(minimum)}입니다")

                    seen_price = item.current_price
                    new_ends_at = extended_end(item.ends_at, item.auto_extend_minutes, now)
                    extended = new_ends_at != item.ends_at
                    claimed = await session.execute(
                        update(Item)
                        .where(
                            Item.id == item_id,
                            Item.status == ItemStatus.LIVE,
                            Item.current_price == seen_price,
                        )
                        .values(current_price=amount, ends_at=new_ends_at, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount == 1:
                        break
                    logger.info("bid claim lost item=%s seen_price=%s attempt=%d", item_id, seen_price, attempt)
                    item = await crud.get_item(session, item_id, for_update=True)
                else:
                    # 마지막으로 다시 읽은 가격 기준의 최소 입찰가를 안내
                    item = _check_biddable(item, bidder_id, now)
                    minimum = minimum_bid(item.current_price, item.bid_step)
                    raise AuctionError(
                        ErrorKind.BID_TOO_LOW,
                        f"다른 입찰이 먼저 처리되었습니다. 최소 입찰가는 {format_price(minimum)}입니다",
                    )

                previous = await crud.get_winning_bid(session, item_id)
                bid = Bid(
                    item_id=item_id,
                    bidder_id=bidder_id,
                    amount=amount,
                    is_proxy=is_proxy,
                    max_proxy_amount=max_proxy_amount if is_proxy else None,
                    is_winning=True,
                    created_at=now,
                )
                session.add(bid)
                await session.flush()
                await crud.demote_winning_bids(session, item_id, keep_bid_id=bid.id)
                item = await crud.get_item(session, item_id)

        outbid_user = None
        if previous is not None and previous.bidder_id != bidder_id:
            outbid_user = previous.bidder_id
        return BidPlacement(bid=bid, item=item, extended=extended), outbid_user

    # --------------------------------------------------------------------------
    # 즉시구매
    # --------------------------------------------------------------------------
    async def buy_now(
        self,
        item_id: int,
        buyer_id: str,
        now: Optional[datetime] = None,
    ) -> ServiceResult[BuyNowResult]:
        """
        즉시구매: 경매를 즉시 종료하고 즉시구매가로 낙찰/주문 생성

        - 입찰 단위 규칙은 적용하지 않는다.
        - 종료 스윕의 LIVE 조건에서 빠지므로 이후 스윕 대상이 아니다.
        """
        now = now or utcnow()
        try:
            result, previous_leader = await self._buy_now(item_id, buyer_id, now)
        except AuctionError as e:
            logger.info("buy-now rejected item=%s buyer=%s kind=%s", item_id, buyer_id, e.kind.value)
            return ServiceResult.failure(e)

        order = result.order
        logger.info(
            "buy-now completed item=%s buyer=%s price=%s order=%s",
            item_id, buyer_id, order.final_price, order.order_number,
        )
        await self.notifier.notify(
            buyer_id,
            NotificationType.AUCTION_WON,
            "즉시구매 완료",
            f"즉시구매가 완료되었습니다. 주문번호 {order.order_number}의 결제를 진행해주세요.",
            {
                "item_id": item_id,
                "final_price": order.final_price,
                "order_number": order.order_number,
            },
        )
        if previous_leader is not None and previous_leader != buyer_id:
            await self.notifier.notify(
                previous_leader,
                NotificationType.AUCTION_LOST,
                "경매 종료",
                "입찰하신 상품이 즉시구매로 판매되었습니다.",
                {"item_id": item_id, "reason": REASON_BUY_NOW},
            )
        return ServiceResult.success(result)

    async def _buy_now(self, item_id: int, buyer_id: str, now: datetime) -> Tuple[BuyNowResult, Optional[str]]:
        async with self.session_factory() as session:
            async with session.begin():
                item = await crud.get_item(session, item_id, for_update=True)
                if item is None:
                    raise item_not_found()
                if item.status != ItemStatus.LIVE:
                    raise AuctionError(ErrorKind.INVALID_STATE, "진행 중인 경매가 아닙니다")
                if item.buy_now_price is None:
                    raise AuctionError(ErrorKind.INVALID_STATE, "즉시구매가 설정되지 않은 상품입니다")
                if item.seller_id == buyer_id:
                    raise AuctionError(ErrorKind.FORBIDDEN, "자신의 상품은 구매할 수 없습니다")

                price = item.buy_now_price
                claimed = await session.execute(
                    update(Item)
                    .where(Item.id == item_id, Item.status == ItemStatus.LIVE)
                    .values(status=ItemStatus.ENDED, current_price=price, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount != 1:
                    raise AuctionError(ErrorKind.INVALID_STATE, "진행 중인 경매가 아닙니다")

                previous = await crud.get_winning_bid(session, item_id)
                bid = Bid(
                    item_id=item_id,
                    bidder_id=buyer_id,
                    amount=price,
                    is_proxy=False,
                    is_winning=True,
                    created_at=now,
                )
                session.add(bid)
                await session.flush()
                await crud.demote_winning_bids(session, item_id, keep_bid_id=bid.id)

                order = self._new_order(item, buyer_id, price, now)
                session.add(order)

        previous_leader = previous.bidder_id if previous is not None else None
        return BuyNowResult(bid=bid, order=order), previous_leader
