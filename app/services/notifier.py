# app/services/notifier.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.db import crud
from app.db.models import Notification, NotificationType

logger: logging.Logger = get_logger(__name__)


class Notifier:
    """
    알림 레코드를 별도 트랜잭션으로 저장하는 best-effort 발송기.

    경매/정산 트랜잭션이 커밋된 뒤에 호출되며, 저장 실패는 로그만 남기고
    호출자에게 전파하지 않는다.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _persist(self, rows: List[Notification]) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add_all(rows)

    async def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        return await self.notify_many([user_id], type, title, message, data)

    async def notify_many(
        self,
        user_ids: Iterable[str],
        type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        rows = [
            Notification(user_id=uid, type=type, title=title, message=message, data=data)
            for uid in user_ids
        ]
        if not rows:
            return True
        try:
            await self._persist(rows)
        except SQLAlchemyError:
            logger.exception("notification failed type=%s users=%s", type.value, [r.user_id for r in rows])
            return False
        return True

    async def list_for_user(self, user_id: str, unread_only: bool = False) -> List[Notification]:
        async with self.session_factory() as session:
            return await crud.list_notifications(session, user_id, unread_only=unread_only)

    async def mark_read(self, user_id: str, notification_id: int) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Notification)
                    .where(Notification.id == notification_id, Notification.user_id == user_id)
                    .values(is_read=True)
                    .execution_options(synchronize_session=False)
                )
        return result.rowcount == 1
