from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_current_user_id, get_notifier, get_order_service, require_admin, unwrap
from app.schemas.items import ApiResponse, NotificationOut, OrderOut
from app.services.notifier import Notifier
from app.services.orders import OrderService

router = APIRouter(tags=["orders"])


@router.get("/orders/{order_number}", response_model=ApiResponse)
async def get_order(
    order_number: str,
    user_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service),
):
    order = unwrap(await service.get_order(order_number, user_id))
    return ApiResponse(status="success", data=OrderOut.model_validate(order))


# 결제 연동(외부)에서 결과를 반영할 때 사용
@router.post("/orders/{order_number}/confirm", response_model=ApiResponse)
async def confirm_payment(
    order_number: str,
    admin_id: str = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = unwrap(await service.confirm_payment(order_number))
    return ApiResponse(status="success", data=OrderOut.model_validate(order), message="결제가 확인되었습니다.")


@router.post("/orders/{order_number}/refund", response_model=ApiResponse)
async def refund_order(
    order_number: str,
    admin_id: str = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = unwrap(await service.refund(order_number))
    return ApiResponse(status="success", data=OrderOut.model_validate(order), message="환불 처리되었습니다.")


@router.post("/orders/{order_number}/cancel", response_model=ApiResponse)
async def cancel_order(
    order_number: str,
    admin_id: str = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = unwrap(await service.cancel(order_number))
    return ApiResponse(status="success", data=OrderOut.model_validate(order), message="주문이 취소되었습니다.")


@router.get("/notifications", response_model=ApiResponse)
async def my_notifications(
    unread_only: bool = False,
    user_id: str = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    rows = await notifier.list_for_user(user_id, unread_only=unread_only)
    return ApiResponse(status="success", data=[NotificationOut.model_validate(n) for n in rows])


@router.post("/notifications/{notification_id}/read", response_model=ApiResponse)
async def mark_notification_read(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    if not await notifier.mark_read(user_id, notification_id):
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "알림을 찾을 수 없습니다."})
    return ApiResponse(status="success")
