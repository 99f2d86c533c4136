# app/db/crud.py
from __future__ import annotations
from typing import Optional, List, Sequence
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, desc, asc, or_

from app.db.models import (
    AuditLog, Item, ItemStatus, Bid, Order, PaymentStatus, Watchlist, Notification
)

# ---------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------
async def get_item(db: AsyncSession, item_id: int, for_update: bool = False) -> Optional[Item]:
    """
    상품 단건 조회

    - for_update=True 이면 SELECT ... FOR UPDATE 로 행 잠금(PostgreSQL).
      SQLite 는 잠금 절을 무시하므로 조건부 UPDATE 로 경합을 막는다.
    - populate_existing 으로 세션에 캐시된 객체도 최신 값으로 갱신한다.

    Args:
        db: AsyncSession
        item_id: 상품 기본키
        for_update: 행 잠금 여부

    Returns:
        Item 또는 None
    """
    q = select(Item).where(Item.id == item_id).execution_options(populate_existing=True)
    if for_update:
        q = q.with_for_update()
    return (await db.execute(q)).scalar_one_or_none()


async def list_item_ids_due(
    db: AsyncSession,
    status: ItemStatus,
    now: datetime,
    field: str,
) -> List[int]:
    """
    스윕 대상 상품 id 조회 (status 가 일치하고 starts_at/ends_at <= now)

    Args:
        db: AsyncSession
        status: SCHEDULED(시작 스윕) 또는 LIVE(종료 스윕)
        now: 기준 시각
        field: "starts_at" 또는 "ends_at"
    """
    column = getattr(Item, field)
    q = (
        select(Item.id)
        .where(Item.status == status, column <= now)
        .order_by(column.asc(), Item.id.asc())
    )
    return list((await db.execute(q)).scalars().all())


async def list_items(
    db: AsyncSession,
    status: Optional[ItemStatus],
    species: Optional[str] = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 20,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    search: Optional[str] = None,
) -> tuple[List[Item], int]:
    """
    상품 목록 조회 (필터/정렬/페이지네이션)

    Args:
        status: None 이면 전체 상태
        species: 수종 부분 일치
        min_price, max_price: current_price 범위 (경계 포함)
        search: 제목/설명/수종 부분 일치

    Returns:
        (상품 리스트, 전체 개수)
    """
    conditions = []
    if status is not None:
        conditions.append(Item.status == status)
    if species:
        conditions.append(Item.species.ilike(f"%{species}%"))
    if min_price is not None:
        conditions.append(Item.current_price >= min_price)
    if max_price is not None:
        conditions.append(Item.current_price <= max_price)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            Item.title.ilike(pattern),
            Item.description.ilike(pattern),
            Item.species.ilike(pattern),
        ))

    ordering = {
        "price_asc": (asc(Item.current_price),),
        "price_desc": (desc(Item.current_price),),
        "ending_soon": (asc(Item.ends_at),),
    }.get(sort, (desc(Item.created_at),))
    q = (
        select(Item)
        .where(*conditions)
        .order_by(*ordering, Item.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    items = (await db.execute(q)).scalars().all()
    total = (await db.execute(select(func.count(Item.id)).where(*conditions))).scalar_one()
    return list(items), total


async def count_items(db: AsyncSession, status: Optional[ItemStatus] = None) -> int:
    q = select(func.count(Item.id))
    if status is not None:
        q = q.where(Item.status == status)
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------
# Bids
# ---------------------------------------------------------------------
async def get_highest_bid(db: AsyncSession, item_id: int) -> Optional[Bid]:
    """최고 입찰 1건 (금액 내림차순, 동액이면 먼저 들어온 입찰)"""
    q = (
        select(Bid)
        .where(Bid.item_id == item_id)
        .order_by(Bid.amount.desc(), Bid.created_at.asc(), Bid.id.asc())
        .limit(1)
    )
    return (await db.execute(q)).scalar_one_or_none()


async def get_winning_bid(db: AsyncSession, item_id: int) -> Optional[Bid]:
    q = select(Bid).where(Bid.item_id == item_id, Bid.is_winning.is_(True)).limit(1)
    return (await db.execute(q)).scalar_one_or_none()


async def list_bids(db: AsyncSession, item_id: int, limit: int = 20) -> Sequence[Bid]:
    q = (
        select(Bid)
        .where(Bid.item_id == item_id)
        .order_by(Bid.amount.desc(), Bid.id.desc())
        .limit(limit)
    )
    return (await db.execute(q)).scalars().all()


async def demote_winning_bids(db: AsyncSession, item_id: int, keep_bid_id: Optional[int] = None) -> int:
    """
    itemId + isWinning=true (+ id != keep_bid_id) 인 입찰의 낙찰 플래그를 일괄 해제

    Returns:
        해제된 행 수
    """
    q = update(Bid).where(Bid.item_id == item_id, Bid.is_winning.is_(True))
    if keep_bid_id is not None:
        q = q.where(Bid.id != keep_bid_id)
    result = await db.execute(q.values(is_winning=False).execution_options(synchronize_session=False))
    return result.rowcount


# ---------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------
async def get_order_by_number(db: AsyncSession, order_number: str, for_update: bool = False) -> Optional[Order]:
    q = select(Order).where(Order.order_number == order_number).execution_options(populate_existing=True)
    if for_update:
        q = q.with_for_update()
    return (await db.execute(q)).scalar_one_or_none()


async def sum_paid_revenue(db: AsyncSession) -> int:
    """결제 완료(PAID)이고 취소되지 않은 주문의 total_amount 합계"""
    q = select(func.coalesce(func.sum(Order.total_amount), 0)).where(
        Order.payment_status == PaymentStatus.PAID,
        Order.canceled_at.is_(None),
    )
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------
async def list_recent_audit_logs(db: AsyncSession, limit: int = 10) -> List[AuditLog]:
    q = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    return list((await db.execute(q)).scalars().all())


# ---------------------------------------------------------------------
# Watchlist / Notifications
# ---------------------------------------------------------------------
async def list_watcher_ids(db: AsyncSession, item_id: int) -> List[str]:
    q = select(Watchlist.user_id).where(Watchlist.item_id == item_id).order_by(Watchlist.id.asc())
    return list((await db.execute(q)).scalars().all())


async def get_watchlist_entry(db: AsyncSession, user_id: str, item_id: int) -> Optional[Watchlist]:
    q = select(Watchlist).where(Watchlist.user_id == user_id, Watchlist.item_id == item_id)
    return (await db.execute(q)).scalar_one_or_none()


async def list_watched_items(db: AsyncSession, user_id: str) -> List[Item]:
    q = (
        select(Item)
        .join(Watchlist, Watchlist.item_id == Item.id)
        .where(Watchlist.user_id == user_id)
        .order_by(Watchlist.created_at.desc(), Watchlist.id.desc())
    )
    return list((await db.execute(q)).scalars().all())


async def list_notifications(db: AsyncSession, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    q = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        q = q.where(Notification.is_read.is_(False))
    q = q.order_by(Notification.id.desc()).limit(limit)
    return list((await db.execute(q)).scalars().all())
