# app/services/watchlist.py
from __future__ import annotations

from typing import List

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import crud
from app.db.models import Item, Watchlist
from app.services.errors import AuctionError, ErrorKind, ServiceResult, item_not_found


class WatchlistService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, user_id: str, item_id: int) -> ServiceResult[Watchlist]:
        already = AuctionError(ErrorKind.VALIDATION, "이미 관심목록에 추가된 상품입니다")
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if await crud.get_item(session, item_id) is None:
                        raise item_not_found()
                    if await crud.get_watchlist_entry(session, user_id, item_id) is not None:
                        raise already
                    entry = Watchlist(user_id=user_id, item_id=item_id)
                    session.add(entry)
        except AuctionError as e:
            return ServiceResult.failure(e)
        except IntegrityError:
            # 동시에 같은 쌍이 추가된 경우 (user_id, item_id) 유니크 제약
            return ServiceResult.failure(already)
        return ServiceResult.success(entry)

    async def remove(self, user_id: str, item_id: int) -> ServiceResult[bool]:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(Watchlist).where(Watchlist.user_id == user_id, Watchlist.item_id == item_id)
                )
        if result.rowcount == 0:
            return ServiceResult.failure(AuctionError(ErrorKind.NOT_FOUND, "관심목록에 없는 상품입니다"))
        return ServiceResult.success(True)

    async def clear(self, user_id: str) -> ServiceResult[int]:
        """사용자의 관심목록(장바구니) 전체 삭제. 삭제된 항목 수를 반환"""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(delete(Watchlist).where(Watchlist.user_id == user_id))
        return ServiceResult.success(result.rowcount)

    async def list_items(self, user_id: str) -> ServiceResult[List[Item]]:
        async with self.session_factory() as session:
            items = await crud.list_watched_items(session, user_id)
        return ServiceResult.success(items)
