# app/services/pricing.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
import secrets
import string

_ORDER_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class Settlement:
    final_price: int
    buyer_premium: int
    seller_fee: int
    total_amount: int


def minimum_bid(current_price: int, bid_step: int) -> int:
    """
    다음 입찰의 최소 금액 = 현재가 + 입찰 단위

    Examples:
        >>> minimum_bid(100000, 10000)
        110000
    """
    return current_price + bid_step


def percent_of(amount: int, rate: Decimal) -> int:
    """
    금액 * 비율을 원 단위로 반올림(half-up)

    - float 오차를 피하려고 Decimal 로 계산
    """
    return int((Decimal(amount) * Decimal(rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def settle(final_price: int, buyer_premium_rate: Decimal, seller_fee_rate: Decimal) -> Settlement:
    """
    낙찰가로 정산 금액 계산

    Args:
        final_price: 낙찰가(또는 즉시구매가)
        buyer_premium_rate: 구매자 수수료율 (기본 0.07)
        seller_fee_rate: 판매자 수수료율 (기본 0.10)

    Returns:
        Settlement(final_price, buyer_premium, seller_fee, total_amount)
        total_amount = final_price + buyer_premium
    """
    premium = percent_of(final_price, buyer_premium_rate)
    fee = percent_of(final_price, seller_fee_rate)
    return Settlement(
        final_price=final_price,
        buyer_premium=premium,
        seller_fee=fee,
        total_amount=final_price + premium,
    )


def extended_end(ends_at: datetime, auto_extend_minutes: int, now: datetime) -> datetime:
    """
    스나이핑 방지 자동 연장

    - 마감 auto_extend_minutes 분 전 이후에 들어온 입찰이면 마감을 now + auto_extend_minutes 로 밀어낸다.
    - 원래 마감 기준 누적이 아니라 입찰 시각 기준 슬라이딩 윈도우.
    - 0 이면 연장하지 않음.
    """
    if not auto_extend_minutes:
        return ends_at
    window = timedelta(minutes=auto_extend_minutes)
    if now > ends_at - window:
        return now + window
    return ends_at


def generate_order_number(now: datetime) -> str:
    """ORD-<epoch ms>-<base36 9자리>"""
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(9))
    return f"ORD-{int(now.timestamp() * 1000)}-{suffix}"
