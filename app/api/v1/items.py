import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_auction_service, get_current_user_id, get_review_service, unwrap,
)
from app.db import crud
from app.db.models import ItemStatus
from app.db.session import get_session
from app.schemas.items import (
    ApiResponse, BidOut, BidPlacementOut, BidRequest, BuyNowOut, ItemCreate,
    ItemDetail, ItemOut, ItemPage, OrderOut, Pagination,
)
from app.services.auction import AuctionService
from app.services.pricing import minimum_bid
from app.services.review import ReviewService

router = APIRouter(prefix="/items", tags=["items"])


@router.get("", response_model=ApiResponse)
async def list_items(
    status: Optional[ItemStatus] = Query(ItemStatus.LIVE, description="상품 상태 (기본 LIVE)"),
    species: Optional[str] = Query(None, description="수종 검색"),
    min_price: Optional[int] = Query(None, ge=0, description="현재가 하한"),
    max_price: Optional[int] = Query(None, ge=0, description="현재가 상한"),
    search: Optional[str] = Query(None, description="제목/설명/수종 검색"),
    sort: str = Query("newest", description="newest | price_asc | price_desc | ending_soon"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    items, total = await crud.list_items(
        session, status, species=species, sort=sort, page=page, limit=limit,
        min_price=min_price, max_price=max_price, search=search,
    )
    data = ItemPage(
        items=[ItemOut.from_item(i) for i in items],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )
    return ApiResponse(status="success", data=data)


@router.get("/{item_id}", response_model=ApiResponse)
async def get_item(item_id: int, session: AsyncSession = Depends(get_session)):
    """상품 상세 + 상위 입찰 목록 + 다음 최소 입찰가"""
    item = await crud.get_item(session, item_id)
    if item is None:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "상품을 찾을 수 없습니다"})
    bids = await crud.list_bids(session, item_id)
    detail = ItemDetail(
        item=ItemOut.from_item(item),
        bids=[BidOut.model_validate(b) for b in bids],
        minimum_bid=minimum_bid(item.current_price, item.bid_step) if item.status == ItemStatus.LIVE else None,
    )
    return ApiResponse(status="success", data=detail)


@router.post("", response_model=ApiResponse, status_code=201)
async def create_item(
    payload: ItemCreate,
    draft: bool = Query(False, description="임시저장 여부"),
    user_id: str = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
):
    item = unwrap(await service.create_item(user_id, payload, draft=draft))
    return ApiResponse(status="success", data=ItemOut.from_item(item), message="상품이 등록되었습니다.")


@router.post("/{item_id}/submit", response_model=ApiResponse)
async def submit_item(
    item_id: int,
    user_id: str = Depends(get_current_user_id),
    service: ReviewService = Depends(get_review_service),
):
    item = unwrap(await service.submit_item(item_id, user_id))
    return ApiResponse(status="success", data=ItemOut.from_item(item), message="검수 요청되었습니다.")


@router.post("/{item_id}/bid", response_model=ApiResponse)
async def place_bid(
    item_id: int,
    payload: BidRequest,
    user_id: str = Depends(get_current_user_id),
    service: AuctionService = Depends(get_auction_service),
):
    placement = unwrap(await service.process_bid(
        item_id, user_id, payload.amount,
        is_proxy=payload.is_proxy, max_proxy_amount=payload.max_proxy_amount,
    ))
    data = BidPlacementOut(
        bid=BidOut.model_validate(placement.bid),
        item=ItemOut.from_item(placement.item),
        extended=placement.extended,
    )
    return ApiResponse(status="success", data=data, message="입찰이 성공적으로 등록되었습니다.")


@router.post("/{item_id}/buy-now", response_model=ApiResponse)
async def buy_now(
    item_id: int,
    user_id: str = Depends(get_current_user_id),
    service: AuctionService = Depends(get_auction_service),
):
    result = unwrap(await service.buy_now(item_id, user_id))
    data = BuyNowOut(bid=BidOut.model_validate(result.bid), order=OrderOut.model_validate(result.order))
    return ApiResponse(status="success", data=data, message="즉시구매가 완료되었습니다. 결제 페이지로 이동합니다.")
