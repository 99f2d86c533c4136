from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from app.db.models import ItemStatus, PaymentStatus, NotificationType


# ============================================
# Request Models
# ============================================

class ItemCreate(BaseModel):
    """상품 등록 Request"""
    title: str = Field(..., min_length=3, description="제목 (최소 3자)")
    species: str = Field(..., min_length=1, description="수종 (ex. 흑송, 진백)")
    style: Optional[str] = Field(None, description="수형 (ex. 직간, 모양목)")
    description: Optional[str] = None
    height_cm: Optional[int] = Field(None, gt=0, description="수고 (cm)")

    start_price: int = Field(..., gt=0, description="시작가")
    buy_now_price: Optional[int] = Field(None, gt=0, description="즉시구매가")
    reserve_price: Optional[int] = Field(None, gt=0, description="최저낙찰가 (비공개)")
    bid_step: int = Field(..., gt=0, description="입찰 단위")

    starts_at: datetime
    ends_at: datetime
    auto_extend_minutes: int = Field(0, ge=0, le=10, description="자동 연장(분), 0이면 사용 안 함")

    @model_validator(mode="after")
    def _check_schedule_and_prices(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("종료 시각은 시작 시각 이후여야 합니다")
        if self.buy_now_price is not None and self.buy_now_price < self.start_price:
            raise ValueError("즉시구매가는 시작가 이상이어야 합니다")
        if self.reserve_price is not None and self.reserve_price < self.start_price:
            raise ValueError("최저낙찰가는 시작가 이상이어야 합니다")
        return self


class BidRequest(BaseModel):
    """입찰 Request (금액/자동입찰 검증은 엔진에서 수행)"""
    amount: int = Field(..., description="입찰가")
    is_proxy: bool = Field(False, description="자동 입찰 여부")
    max_proxy_amount: Optional[int] = Field(None, description="자동 입찰 최대가")


class RejectRequest(BaseModel):
    """상품 거부 Request"""
    reason: str = Field("", description="거부 사유")


# ============================================
# Response Models
# ============================================

class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    seller_id: str
    title: str
    species: str
    style: Optional[str] = None
    description: Optional[str] = None
    height_cm: Optional[int] = None
    start_price: int
    current_price: int
    buy_now_price: Optional[int] = None
    bid_step: int
    starts_at: datetime
    ends_at: datetime
    auto_extend_minutes: int
    status: ItemStatus
    # reserve_price 는 입찰자에게 공개하지 않음
    has_reserve: bool = False

    @classmethod
    def from_item(cls, item) -> "ItemOut":
        out = cls.model_validate(item)
        out.has_reserve = item.reserve_price is not None
        return out


class BidOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: int
    bidder_id: str
    amount: int
    is_proxy: bool
    max_proxy_amount: Optional[int] = None
    is_winning: bool
    created_at: datetime


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_number: str
    item_id: int
    buyer_id: str
    final_price: int
    buyer_premium: int
    seller_fee: int
    total_amount: int
    payment_status: PaymentStatus
    paid_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    created_at: datetime


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: NotificationType
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime


class ItemDetail(BaseModel):
    item: ItemOut
    bids: List[BidOut]
    minimum_bid: Optional[int] = None


class BidPlacementOut(BaseModel):
    bid: BidOut
    item: ItemOut
    extended: bool


class BuyNowOut(BaseModel):
    bid: BidOut
    order: OrderOut


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ItemPage(BaseModel):
    items: List[ItemOut]
    pagination: Pagination


class AdminItemOut(ItemOut):
    """관리자 화면용 (최저낙찰가 포함)"""
    reserve_price: Optional[int] = None
    created_at: datetime


class AdminItemPage(BaseModel):
    items: List[AdminItemOut]
    pagination: Pagination


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: str
    action: str
    target_item_id: Optional[int] = None
    diff: Optional[Dict[str, Any]] = None
    created_at: datetime


class DashboardOut(BaseModel):
    """관리자 대시보드 통계"""
    total_items: int
    live_auctions: int
    pending_reviews: int
    total_revenue: int = Field(..., description="결제 완료 주문 total_amount 합계")
    recent_activity: List[AuditLogOut]


class ApiResponse(BaseModel):
    """공통 Response"""
    status: str = Field(..., description="응답 상태 (success/error)")
    data: Optional[Any] = None
    message: Optional[str] = Field(None, description="메시지")
