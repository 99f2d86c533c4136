from __future__ import annotations
from typing import Optional
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from app.core.config import get_settings
from app.core.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None

async def job_start_auctions():
    from app.api.deps import get_auction_service

    result = await get_auction_service().start_scheduled_auctions()
    if result.value:
        logger.info("[sched] started %d auctions", result.value)

async def job_end_auctions():
    from app.api.deps import get_auction_service

    result = await get_auction_service().end_expired_auctions()
    if result.value:
        logger.info("[sched] ended %d auctions", result.value)

def start_scheduler():
    global _scheduler
    if _scheduler and _scheduler.running:
        return
    settings = get_settings()
    _scheduler = AsyncIOScheduler(timezone=settings.SCHED_TIMEZONE)

    if settings.SCHED_ENABLE:
        # 같은 잡이 겹쳐 돌지 않도록 max_instances=1, 밀린 실행은 한 번으로 합침
        _scheduler.add_job(
            job_start_auctions,
            CronTrigger.from_crontab(settings.SCHED_CRON_AUCTION_START, timezone=settings.SCHED_TIMEZONE),
            id="auction_start_sweep",
            max_instances=1,
            coalesce=True,
        )
        _scheduler.add_job(
            job_end_auctions,
            CronTrigger.from_crontab(settings.SCHED_CRON_AUCTION_END, timezone=settings.SCHED_TIMEZONE),
            id="auction_end_sweep",
            max_instances=1,
            coalesce=True,
        )

    _scheduler.start()

def shutdown_scheduler():
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        _scheduler = None
