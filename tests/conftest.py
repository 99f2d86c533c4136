from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.db.models import Bid, Item, ItemStatus, Notification, Order, Watchlist
from app.db.session import Base, build_engine, build_session_factory
from app.services.auction import AuctionService
from app.services.notifier import Notifier

NOW = datetime(2026, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class Store:
    """테스트에서 DB 상태를 직접 확인하기 위한 헬퍼"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def add_item(self, **overrides) -> Item:
        fields = dict(
            seller_id="seller-1",
            title="흑송 모양목",
            species="흑송",
            start_price=100000,
            bid_step=10000,
            starts_at=NOW - timedelta(hours=1),
            ends_at=NOW + timedelta(hours=1),
            auto_extend_minutes=0,
            status=ItemStatus.LIVE,
        )
        fields.update(overrides)
        fields.setdefault("current_price", fields["start_price"])
        item = Item(**fields)
        async with self.session_factory() as s:
            async with s.begin():
                s.add(item)
        return item

    async def watch(self, user_id: str, item_id: int) -> None:
        async with self.session_factory() as s:
            async with s.begin():
                s.add(Watchlist(user_id=user_id, item_id=item_id))

    async def item(self, item_id: int) -> Item:
        async with self.session_factory() as s:
            return (await s.execute(select(Item).where(Item.id == item_id))).scalar_one()

    async def bids(self, item_id: int) -> List[Bid]:
        async with self.session_factory() as s:
            q = select(Bid).where(Bid.item_id == item_id).order_by(Bid.id)
            return list((await s.execute(q)).scalars().all())

    async def orders(self, item_id: int) -> List[Order]:
        async with self.session_factory() as s:
            return list((await s.execute(select(Order).where(Order.item_id == item_id))).scalars().all())

    async def notifications(self, user_id: Optional[str] = None) -> List[Notification]:
        async with self.session_factory() as s:
            q = select(Notification).order_by(Notification.id)
            if user_id is not None:
                q = q.where(Notification.user_id == user_id)
            return list((await s.execute(q)).scalars().all())


class FailingNotifier(Notifier):
    """저장 단계에서 항상 DB 오류를 내는 알림 발송기"""

    async def _persist(self, rows):
        raise SQLAlchemyError("notification store unavailable")


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


@pytest.fixture
def notifier(session_factory):
    return Notifier(session_factory)


@pytest.fixture
def auction(session_factory, notifier):
    return AuctionService(session_factory, notifier)
