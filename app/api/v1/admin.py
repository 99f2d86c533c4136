import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auction_service, get_review_service, require_admin, unwrap
from app.db import crud
from app.db.models import ItemStatus
from app.db.session import get_session
from app.schemas.items import (
    AdminItemOut, AdminItemPage, ApiResponse, AuditLogOut, DashboardOut, ItemOut, Pagination, RejectRequest,
)
from app.services.auction import AuctionService
from app.services.review import ReviewService

router = APIRouter(prefix="/admin", tags=["admin"])


def _parse_status(status: str) -> Optional[ItemStatus]:
    if status.upper() == "ALL":
        return None
    try:
        return ItemStatus(status.upper())
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION", "message": f"알 수 없는 상품 상태입니다: {status}"},
        )


@router.get("/items", response_model=ApiResponse)
async def list_items_for_review(
    status: str = Query("ALL", description="상품 상태 (ALL 이면 전체)"),
    search: Optional[str] = Query(None, description="제목/설명/수종 검색"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin_id: str = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """검수 큐: 전체 상태 상품 목록 (최신 등록순)"""
    items, total = await crud.list_items(
        session, _parse_status(status), search=search, page=page, limit=limit,
    )
    data = AdminItemPage(
        items=[AdminItemOut.from_item(i) for i in items],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )
    return ApiResponse(status="success", data=data)


@router.get("/dashboard", response_model=ApiResponse)
async def dashboard(
    admin_id: str = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """상품 수, 진행 중 경매 수, 검수 대기 수, 매출 합계, 최근 관리자 활동 10건"""
    stats = DashboardOut(
        total_items=await crud.count_items(session),
        live_auctions=await crud.count_items(session, ItemStatus.LIVE),
        pending_reviews=await crud.count_items(session, ItemStatus.PENDING_REVIEW),
        total_revenue=await crud.sum_paid_revenue(session),
        recent_activity=[AuditLogOut.model_validate(a) for a in await crud.list_recent_audit_logs(session)],
    )
    return ApiResponse(status="success", data=stats)


@router.post("/items/{item_id}/approve", response_model=ApiResponse)
async def approve_item(
    item_id: int,
    admin_id: str = Depends(require_admin),
    service: ReviewService = Depends(get_review_service),
):
    item = unwrap(await service.approve_item(item_id, admin_id))
    return ApiResponse(status="success", data=ItemOut.from_item(item), message="상품이 승인되었습니다.")


@router.post("/items/{item_id}/reject", response_model=ApiResponse)
async def reject_item(
    item_id: int,
    payload: RejectRequest,
    admin_id: str = Depends(require_admin),
    service: ReviewService = Depends(get_review_service),
):
    item = unwrap(await service.reject_item(item_id, admin_id, payload.reason))
    return ApiResponse(status="success", data=ItemOut.from_item(item), message="상품이 거부되었습니다.")


# 외부 cron 이 호출하는 스윕 엔드포인트
@router.post("/sweeps/start", response_model=ApiResponse)
async def sweep_start(
    admin_id: str = Depends(require_admin),
    service: AuctionService = Depends(get_auction_service),
):
    started = unwrap(await service.start_scheduled_auctions())
    return ApiResponse(status="success", data={"started": started})


@router.post("/sweeps/end", response_model=ApiResponse)
async def sweep_end(
    admin_id: str = Depends(require_admin),
    service: AuctionService = Depends(get_auction_service),
):
    ended = unwrap(await service.end_expired_auctions())
    return ApiResponse(status="success", data={"ended": ended})
