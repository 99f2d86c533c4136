"""
Auction Sweep Task
외부 cron 에서 한 번씩 실행하는 경매 시작/종료 스윕

실행 명령:
python -m tasks.auction_sweep            # 시작 + 종료
python -m tasks.auction_sweep --only end # 종료만
"""
import argparse
import asyncio

from app.core.logging import get_logger, setup_logging
from app.db.session import SessionLocal
from app.services.auction import AuctionService
from app.services.notifier import Notifier

logger = get_logger("tasks.auction_sweep")


async def run_sweep(service: AuctionService, only: str = "all") -> dict:
    """
    스윕 1회 실행

    Args:
        service: AuctionService
        only: "start" | "end" | "all"

    Returns:
        {"started": n, "ended": m}
    """
    counts = {"started": 0, "ended": 0}
    if only in ("start", "all"):
        counts["started"] = (await service.start_scheduled_auctions()).value
    if only in ("end", "all"):
        counts["ended"] = (await service.end_expired_auctions()).value
    return counts


def main():
    parser = argparse.ArgumentParser(description="경매 시작/종료 스윕")
    parser.add_argument("--only", choices=["start", "end", "all"], default="all")
    args = parser.parse_args()

    setup_logging()
    service = AuctionService(SessionLocal, Notifier(SessionLocal))
    counts = asyncio.run(run_sweep(service, args.only))
    logger.info("sweep done started=%d ended=%d", counts["started"], counts["ended"])


if __name__ == "__main__":
    main()
