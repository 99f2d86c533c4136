# app/services/review.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.db import crud
from app.db.models import AuditLog, Item, ItemStatus, NotificationType, utcnow
from app.schemas.items import ItemCreate
from app.services.errors import AuctionError, ErrorKind, ServiceResult, item_not_found
from app.services.notifier import Notifier

logger: logging.Logger = get_logger(__name__)


class ReviewService:
    """판매자 등록 → 관리자 검수(승인/거부) 흐름"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier):
        self.session_factory = session_factory
        self.notifier = notifier

    async def create_item(self, seller_id: str, payload: ItemCreate, draft: bool = False) -> ServiceResult[Item]:
        """
        판매자 상품 등록

        - draft=True 면 DRAFT, 아니면 바로 PENDING_REVIEW
        - current_price 는 시작가로 초기화
        """
        item = Item(
            seller_id=seller_id,
            current_price=payload.start_price,
            status=ItemStatus.DRAFT if draft else ItemStatus.PENDING_REVIEW,
            **payload.model_dump(),
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(item)
        logger.info("item created id=%s seller=%s status=%s", item.id, seller_id, item.status.value)
        return ServiceResult.success(item)

    async def submit_item(self, item_id: int, seller_id: str) -> ServiceResult[Item]:
        """DRAFT → PENDING_REVIEW (판매자 본인만)"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    item = await crud.get_item(session, item_id, for_update=True)
                    if item is None:
                        raise item_not_found()
                    if item.seller_id != seller_id:
                        raise AuctionError(ErrorKind.FORBIDDEN, "본인 상품만 검수 요청할 수 있습니다")
                    await self._transition(session, item, ItemStatus.DRAFT, ItemStatus.PENDING_REVIEW,
                                           "임시저장 상품만 검수 요청할 수 있습니다")
        except AuctionError as e:
            return ServiceResult.failure(e)
        return ServiceResult.success(item)

    async def approve_item(self, item_id: int, admin_id: str) -> ServiceResult[Item]:
        """PENDING_REVIEW → SCHEDULED, 감사 로그 + 판매자 알림"""
        try:
            item = await self._review(item_id, admin_id, ItemStatus.SCHEDULED, "ITEM_APPROVED",
                                      "검수 대기 중인 상품만 승인할 수 있습니다")
        except AuctionError as e:
            return ServiceResult.failure(e)

        await self.notifier.notify(
            item.seller_id,
            NotificationType.ADMIN_MESSAGE,
            "상품 승인 완료",
            f'상품 "{item.title}"이 승인되었습니다.',
            {"item_id": item.id, "item_title": item.title},
        )
        return ServiceResult.success(item)

    async def reject_item(self, item_id: int, admin_id: str, reason: str) -> ServiceResult[Item]:
        """PENDING_REVIEW → CANCELED, 사유 필수"""
        reason = (reason or "").strip()
        if not reason:
            return ServiceResult.failure(AuctionError(ErrorKind.VALIDATION, "거부 사유를 입력하세요"))
        try:
            item = await self._review(item_id, admin_id, ItemStatus.CANCELED, "ITEM_REJECTED",
                                      "검수 대기 중인 상품만 거부할 수 있습니다", reason=reason)
        except AuctionError as e:
            return ServiceResult.failure(e)

        await self.notifier.notify(
            item.seller_id,
            NotificationType.ADMIN_MESSAGE,
            "상품 거부됨",
            f'상품 "{item.title}"이 거부되었습니다. 사유: {reason}',
            {"item_id": item.id, "item_title": item.title, "reason": reason},
        )
        return ServiceResult.success(item)

    async def _review(
        self,
        item_id: int,
        admin_id: str,
        target: ItemStatus,
        action: str,
        state_message: str,
        reason: Optional[str] = None,
    ) -> Item:
        async with self.session_factory() as session:
            async with session.begin():
                item = await crud.get_item(session, item_id, for_update=True)
                if item is None:
                    raise item_not_found()
                await self._transition(session, item, ItemStatus.PENDING_REVIEW, target, state_message)
                diff = {"status": {"from": ItemStatus.PENDING_REVIEW.value, "to": target.value}}
                if reason is not None:
                    diff["reason"] = reason
                session.add(AuditLog(actor_id=admin_id, action=action, target_item_id=item.id, diff=diff))
        logger.info("item reviewed id=%s action=%s admin=%s", item_id, action, admin_id)
        return item

    @staticmethod
    async def _transition(
        session: AsyncSession,
        item: Item,
        source: ItemStatus,
        target: ItemStatus,
        state_message: str,
        now: Optional[datetime] = None,
    ) -> None:
        result = await session.execute(
            update(Item)
            .where(Item.id == item.id, Item.status == source)
            .values(status=target, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AuctionError(ErrorKind.INVALID_STATE, state_message)
        await session.refresh(item)
