from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from app.api.v1.items import router as items_router
from app.api.v1.watchlist import router as watchlist_router
from app.api.v1.admin import router as admin_router
from app.api.v1.orders import router as orders_router
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.core.scheduler import start_scheduler, shutdown_scheduler
from app.db.session import create_all, ping


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await create_all()
    start_scheduler()
    try:
        yield
    finally:
        shutdown_scheduler()

app = FastAPI(
    title="Bonsai Auction API",
    description="분재 경매 마켓플레이스 API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,     # 프론트엔드 주소
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 라우터 등록
app.include_router(items_router, prefix="/api/v1")
app.include_router(watchlist_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(orders_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    await ping()
    return {"ok": True}
