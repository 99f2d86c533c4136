from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from app.core.config import get_settings

settings = get_settings()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    kwargs = {"echo": echo}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # 트랜잭션 종료 후에도 반환 객체의 컬럼 값을 읽을 수 있도록 expire 끔
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
SessionLocal = build_session_factory(engine)

# Base (ORM 모델이 상속)
class Base(DeclarativeBase):
    pass

# FastAPI 의존성 (라우터에서 Depends로 주입)
async def get_session():
    async with SessionLocal() as s:
        yield s

async def create_all(bind: AsyncEngine = engine) -> None:
    from app.db import models  # noqa: F401  모델 등록

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

# (선택) 헬스체크
async def ping():
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
