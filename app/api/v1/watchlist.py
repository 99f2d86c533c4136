from fastapi import APIRouter, Depends

from app.api.deps import get_current_user_id, get_watchlist_service, unwrap
from app.schemas.items import ApiResponse, ItemOut
from app.services.watchlist import WatchlistService

router = APIRouter(tags=["watchlist"])


@router.get("/watchlist", response_model=ApiResponse)
async def my_watchlist(
    user_id: str = Depends(get_current_user_id),
    service: WatchlistService = Depends(get_watchlist_service),
):
    items = unwrap(await service.list_items(user_id))
    return ApiResponse(status="success", data=[ItemOut.from_item(i) for i in items])


@router.delete("/watchlist", response_model=ApiResponse)
async def clear_watchlist(
    user_id: str = Depends(get_current_user_id),
    service: WatchlistService = Depends(get_watchlist_service),
):
    removed = unwrap(await service.clear(user_id))
    return ApiResponse(status="success", data={"removed": removed}, message="관심목록이 비워졌습니다.")


@router.post("/items/{item_id}/watchlist", response_model=ApiResponse)
async def add_to_watchlist(
    item_id: int,
    user_id: str = Depends(get_current_user_id),
    service: WatchlistService = Depends(get_watchlist_service),
):
    unwrap(await service.add(user_id, item_id))
    return ApiResponse(status="success", message="관심목록에 추가되었습니다.")


@router.delete("/items/{item_id}/watchlist", response_model=ApiResponse)
async def remove_from_watchlist(
    item_id: int,
    user_id: str = Depends(get_current_user_id),
    service: WatchlistService = Depends(get_watchlist_service),
):
    unwrap(await service.remove(user_id, item_id))
    return ApiResponse(status="success", message="관심목록에서 제거되었습니다.")
