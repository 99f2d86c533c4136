"""
Utility Helper Functions
"""


def format_price(price: int) -> str:
    """
    가격을 천 단위 구분 형식으로 변환

    Args:
        price: 가격 (정수)

    Returns:
        포맷된 가격 문자열 (ex. 1,000,000원)
    """
    return f"{price:,}원"
