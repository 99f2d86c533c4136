# app/api/deps.py
from typing import NoReturn

from fastapi import Header, HTTPException

from app.db.session import SessionLocal
from app.services.auction import AuctionService
from app.services.errors import AuctionError, ErrorKind, ServiceResult
from app.services.notifier import Notifier
from app.services.orders import OrderService
from app.services.review import ReviewService
from app.services.watchlist import WatchlistService

# 오류 종류 → HTTP 상태 코드
STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.EXPIRED: 409,
    ErrorKind.BID_TOO_LOW: 400,
    ErrorKind.VALIDATION: 400,
}


def raise_for_error(error: AuctionError) -> NoReturn:
    raise HTTPException(
        status_code=STATUS_BY_KIND[error.kind],
        detail={"code": error.kind.value, "message": error.message},
    )


def unwrap(result: ServiceResult):
    """성공이면 값을 돌려주고, 실패면 HTTPException 으로 변환"""
    if not result.ok:
        raise_for_error(result.error)
    return result.value


# ---------------------------------------------------------------------
# 요청 단위 사용자 식별 (인증 자체는 외부 게이트웨이 담당)
# ---------------------------------------------------------------------
async def get_current_user_id(x_user_id: str | None = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="로그인이 필요합니다.")
    return x_user_id


async def require_admin(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="로그인이 필요합니다.")
    if (x_user_role or "").upper() != "ADMIN":
        raise HTTPException(status_code=403, detail="관리자 권한이 필요합니다.")
    return x_user_id


# ---------------------------------------------------------------------
# 서비스 의존성 (테스트에서는 dependency_overrides 로 교체)
# ---------------------------------------------------------------------
def get_notifier() -> Notifier:
    return Notifier(SessionLocal)


def get_auction_service() -> AuctionService:
    return AuctionService(SessionLocal, get_notifier())


def get_review_service() -> ReviewService:
    return ReviewService(SessionLocal, get_notifier())


def get_watchlist_service() -> WatchlistService:
    return WatchlistService(SessionLocal)


def get_order_service() -> OrderService:
    return OrderService(SessionLocal, get_notifier())
