from datetime import datetime, timedelta, timezone
from decimal import Decimal
import re

import pytest

from app.services.pricing import extended_end, generate_order_number, minimum_bid, percent_of, settle
from utils.helpers import format_price

RATE_BUYER = Decimal("0.07")
RATE_SELLER = Decimal("0.10")


def test_minimum_bid_is_current_plus_step():
    assert minimum_bid(100000, 10000) == 110000


@pytest.mark.parametrize("final_price, premium, fee, total", [
    (2000000, 140000, 200000, 2140000),
    (110000, 7700, 11000, 117700),
    (750000, 52500, 75000, 802500),
    # half-up: 0.07 * 50 = 3.5 -> 4, 0.10 * 5 = 0.5 -> 1
    (50, 4, 5, 54),
    (5, 0, 1, 5),
])
def test_settlement_arithmetic(final_price, premium, fee, total):
    s = settle(final_price, RATE_BUYER, RATE_SELLER)
    assert s.final_price == final_price
    assert s.buyer_premium == premium
    assert s.seller_fee == fee
    assert s.total_amount == total == final_price + s.buyer_premium


def test_percent_of_avoids_float_error():
    # float 로는 0.07 * 150 = 10.500000000000002
    assert percent_of(150, RATE_BUYER) == 11
    assert percent_of(0, RATE_BUYER) == 0


def test_extended_end_boundaries():
    ends_at = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    window = timedelta(minutes=5)

    just_before = ends_at - window - timedelta(seconds=1)
    assert extended_end(ends_at, 5, just_before) == ends_at

    just_inside = ends_at - window + timedelta(seconds=1)
    assert extended_end(ends_at, 5, just_inside) == just_inside + window

    three_left = ends_at - timedelta(minutes=3)
    assert extended_end(ends_at, 5, three_left) == ends_at + timedelta(minutes=2)


def test_extended_end_disabled_when_zero():
    ends_at = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert extended_end(ends_at, 0, ends_at - timedelta(seconds=1)) == ends_at


def test_order_number_format_and_uniqueness():
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    numbers = {generate_order_number(now) for _ in range(50)}
    assert len(numbers) == 50
    for n in numbers:
        assert re.fullmatch(rf"ORD-{int(now.timestamp() * 1000)}-[0-9a-z]{{9}}", n)


def test_format_price():
    assert format_price(110000) == "110,000원"
