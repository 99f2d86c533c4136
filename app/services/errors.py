"""
서비스 계층 오류 분류와 결과 타입.

서비스 내부에서는 AuctionError 를 raise 해서 트랜잭션을 롤백시키고,
공개 연산은 ServiceResult 로 감싸 돌려준다. 호출자(HTTP 계층)는 예외 대신
result.error.kind 로 분기한다.
"""
from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    FORBIDDEN = "FORBIDDEN"
    EXPIRED = "EXPIRED"
    BID_TOO_LOW = "BID_TOO_LOW"
    VALIDATION = "VALIDATION"


class AuctionError(Exception):
    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"AuctionError({self.kind.value}, {self.message!r})"


@dataclass
class ServiceResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[AuctionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AuctionError) -> "ServiceResult[T]":
        return cls(error=error)


def item_not_found() -> AuctionError:
    return AuctionError(ErrorKind.NOT_FOUND, "상품을 찾을 수 없습니다")
