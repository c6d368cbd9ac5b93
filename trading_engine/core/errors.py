"""
엔진 공통 예외 정의.

[ 분류 ]
    DataGapError            - 종목 시세가 없거나 짧거나 깨진 경우. 해당 종목만 제외/중립 처리
    SizingError             - 가격 합계가 0이거나 계좌 평가금을 못 구한 경우. 해당 방향(long/short)만 스킵
    OrderRejection          - 주문이 거래소/브로커에서 거부됨. 주문 단위 결과로 흡수되어 RECOVER 단계 입력이 됨
    GatewayUnavailableError - 브로커/시세 소스 자체에 접근 불가. 해당 사이클만 실패 처리

[ 참고 ]
    장 마감(MarketClosed)은 예외가 아니라 runner가 다음 실행 시각을 계산하는 제어 흐름이다.
"""

from typing import Optional


class TradingEngineError(Exception):
    """엔진 예외 최상위 클래스."""


class DataGapError(TradingEngineError):
    """종목 단위 시세 결손."""

    def __init__(self, symbol: str, message: str):
        super().__init__(f"{symbol}: {message}")
        self.symbol = symbol


class SizingError(TradingEngineError):
    """포지션 사이징 불가 (long 또는 short 한쪽)."""

    def __init__(self, side: str, message: str):
        super().__init__(f"[{side}] {message}")
        self.side = side


class OrderRejection(TradingEngineError):
    """브로커가 주문을 거부함."""

    def __init__(self, message: str, intent: Optional[object] = None):
        super().__init__(message)
        self.intent = intent


class GatewayUnavailableError(TradingEngineError):
    """브로커/시세 소스 연결 불가."""
