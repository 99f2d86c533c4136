# app/services/orders.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.db import crud
from app.db.models import NotificationType, Order, PaymentStatus, utcnow
from app.services.errors import AuctionError, ErrorKind, ServiceResult
from app.services.notifier import Notifier
from utils.helpers import format_price

logger: logging.Logger = get_logger(__name__)

# 허용되는 결제 상태 전이
_TRANSITIONS = {
    PaymentStatus.PAID: {PaymentStatus.PENDING},
    PaymentStatus.REFUNDED: {PaymentStatus.PAID},
    PaymentStatus.CANCELED: {PaymentStatus.PENDING},
}


def _order_not_found() -> AuctionError:
    return AuctionError(ErrorKind.NOT_FOUND, "주문을 찾을 수 없습니다")


class OrderService:
    """
    주문 결제 상태 관리.

    실제 결제 승인/환불은 외부 결제 연동이 담당하고, 여기서는 그 결과를
    PENDING → PAID → REFUNDED / PENDING → CANCELED 로 기록만 한다.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier):
        self.session_factory = session_factory
        self.notifier = notifier

    async def get_order(self, order_number: str, user_id: str) -> ServiceResult[Order]:
        """구매자 또는 판매자만 조회 가능"""
        async with self.session_factory() as session:
            order = await crud.get_order_by_number(session, order_number)
            if order is None:
                return ServiceResult.failure(_order_not_found())
            item = await crud.get_item(session, order.item_id)
        if user_id not in (order.buyer_id, item.seller_id if item else None):
            return ServiceResult.failure(AuctionError(ErrorKind.FORBIDDEN, "주문 조회 권한이 없습니다"))
        return ServiceResult.success(order)

    async def confirm_payment(self, order_number: str, now: Optional[datetime] = None) -> ServiceResult[Order]:
        result = await self._transition(order_number, PaymentStatus.PAID, now)
        if result.ok:
            order = result.value
            await self.notifier.notify(
                order.buyer_id,
                NotificationType.PAYMENT_CONFIRMED,
                "결제 완료",
                f"주문 {order.order_number}의 결제({format_price(order.total_amount)})가 완료되었습니다.",
                {"order_number": order.order_number, "total_amount": order.total_amount},
            )
        return result

    async def refund(self, order_number: str, now: Optional[datetime] = None) -> ServiceResult[Order]:
        return await self._transition(order_number, PaymentStatus.REFUNDED, now)

    async def cancel(self, order_number: str, now: Optional[datetime] = None) -> ServiceResult[Order]:
        return await self._transition(order_number, PaymentStatus.CANCELED, now)

    async def _transition(self, order_number: str, target: PaymentStatus, now: Optional[datetime]) -> ServiceResult[Order]:
        now = now or utcnow()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    order = await crud.get_order_by_number(session, order_number, for_update=True)
                    if order is None:
                        raise _order_not_found()
                    if order.payment_status not in _TRANSITIONS[target]:
                        raise AuctionError(
                            ErrorKind.INVALID_STATE,
                            f"{order.payment_status.value} 상태의 주문은 {target.value}로 변경할 수 없습니다",
                        )
                    order.payment_status = target
                    if target == PaymentStatus.PAID:
                        order.paid_at = now
                    elif target == PaymentStatus.CANCELED:
                        order.canceled_at = now
        except AuctionError as e:
            return ServiceResult.failure(e)
        logger.info("order %s -> %s", order_number, target.value)
        return ServiceResult.success(order)
