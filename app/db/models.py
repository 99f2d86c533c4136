"""
SQLAlchemy ORM Models
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, JSON,
    DateTime, ForeignKey, Enum as SQLEnum, BIGINT, Index
)
from sqlalchemy.types import TypeDecorator
from sqlalchemy import UniqueConstraint, CheckConstraint
from app.db.session import Base
import enum


# SQLite 에서는 BIGINT PK 가 rowid 별칭이 되지 않으므로 INTEGER 로 대체
BigIntPK = BIGINT().with_variant(Integer, "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    항상 UTC aware datetime 을 돌려주는 컬럼 타입.

    - SQLite 는 타임존을 저장하지 못하므로 UTC 로 변환한 naive 값을 저장
    - 읽을 때 naive 값이면 UTC 로 간주
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ============================================
# Enum Types
# ============================================

class ItemStatus(str, enum.Enum):
    """경매 상품 상태"""
    DRAFT = "DRAFT"
    PENDING_REVIEW = "PENDING_REVIEW"
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    ENDED = "ENDED"
    CANCELED = "CANCELED"


class PaymentStatus(str, enum.Enum):
    """주문 결제 상태"""
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    CANCELED = "CANCELED"


class NotificationType(str, enum.Enum):
    """알림 유형"""
    AUCTION_START = "AUCTION_START"
    AUCTION_WON = "AUCTION_WON"
    AUCTION_LOST = "AUCTION_LOST"
    OUTBID = "OUTBID"
    ADMIN_MESSAGE = "ADMIN_MESSAGE"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"


# ============================================
# 경매 상품
# ============================================

class Item(Base):
    """경매 상품 (분재)"""
    __tablename__ = "items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    seller_id = Column(String(64), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    species = Column(String(100), nullable=False)
    style = Column(String(100))
    description = Column(Text)
    height_cm = Column(Integer)

    start_price = Column(BIGINT, nullable=False)
    current_price = Column(BIGINT, nullable=False)
    buy_now_price = Column(BIGINT)
    reserve_price = Column(BIGINT)
    bid_step = Column(BIGINT, nullable=False)

    starts_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=False)
    auto_extend_minutes = Column(Integer, nullable=False, default=0)

    status = Column(SQLEnum(ItemStatus, name="item_status"), nullable=False, default=ItemStatus.PENDING_REVIEW)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("start_price > 0", name="chk_items_start_price"),
        CheckConstraint("bid_step > 0", name="chk_items_bid_step"),
        CheckConstraint("auto_extend_minutes >= 0", name="chk_items_auto_extend"),
        Index("ix_items_status_starts_at", "status", "starts_at"),
        Index("ix_items_status_ends_at", "status", "ends_at"),
    )


class Bid(Base):
    """입찰"""
    __tablename__ = "bids"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    item_id = Column(BIGINT, ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    bidder_id = Column(String(64), nullable=False)
    amount = Column(BIGINT, nullable=False)
    is_proxy = Column(Boolean, nullable=False, default=False)
    max_proxy_amount = Column(BIGINT)
    is_winning = Column(Boolean, nullable=False, default=False)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_bids_item_amount", "item_id", "amount"),
    )


# ============================================
# 주문 / 정산
# ============================================

class Order(Base):
    """낙찰 또는 즉시구매로 생성되는 주문"""
    __tablename__ = "orders"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_number = Column(String(40), nullable=False, unique=True)
    item_id = Column(BIGINT, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    buyer_id = Column(String(64), nullable=False, index=True)

    final_price = Column(BIGINT, nullable=False)
    buyer_premium = Column(BIGINT, nullable=False)
    seller_fee = Column(BIGINT, nullable=False)
    total_amount = Column(BIGINT, nullable=False)

    payment_status = Column(SQLEnum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.PENDING)
    paid_at = Column(UTCDateTime)
    canceled_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    # 상품당 주문은 하나
    __table_args__ = (UniqueConstraint("item_id", name="ux_orders_item"),)


# ============================================
# 관심목록 / 알림 / 감사 로그
# ============================================

class Watchlist(Base):
    """관심목록"""
    __tablename__ = "watchlists"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    item_id = Column(BIGINT, ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "item_id", name="ux_watchlists_user_item"),)


class Notification(Base):
    """사용자 알림"""
    __tablename__ = "notifications"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(SQLEnum(NotificationType, name="notification_type"), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


class AuditLog(Base):
    """관리자 조치 기록"""
    __tablename__ = "audit_logs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    actor_id = Column(String(64), nullable=False)
    action = Column(String(50), nullable=False)
    target_item_id = Column(BIGINT, ForeignKey("items.id", ondelete="CASCADE"))
    diff = Column(JSON)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
