"""
백테스트 포트폴리오(원장) 관리 모듈.

[ 역할 ]
    한 종목 백테스트의 현금, 보유 포지션(SimulatedPosition), 거래 기록(Trade)을 관리.
    백테스트 엔진이 진입/청산 체결 시 이 클래스를 통해 상태를 갱신.
    종목마다 독립된 Portfolio를 사용한다 (종목 간 자금 공유 없음).

[ 주요 클래스 ]
    SimulatedPosition - 종목 보유 수량 (롱만, 음수 불가)
    Trade             - 개별 체결 내역. 생성 후 변경 불가
    Portfolio         - 현금 + 포지션 + 거래내역

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine._execute_entry/_execute_exit()
    - backtest/metrics.py에서 trades로 승률 계산
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class PositionState(Enum):
    FLAT = "flat"
    LONG = "long"


@dataclass
class SimulatedPosition:
    """종목 포지션. Portfolio 내부에서 한 개만 관리됨."""
    symbol: str
    shares: int = 0
    entry_price: float = 0.0    # 진입 체결가 (슬리피지 적용 후)

    @property
    def side(self) -> PositionState:
        return PositionState.LONG if self.shares > 0 else PositionState.FLAT

    def open(self, shares: int, price: float) -> None:
        self.shares += shares
        self.entry_price = price

    def close(self) -> int:
        """전량 청산. 청산 수량 반환."""
        shares = self.shares
        self.shares = 0
        self.entry_price = 0.0
        return shares


@dataclass(frozen=True)
class Trade:
    """개별 체결 기록. metrics.py에서 승률 계산에 사용됨."""
    date: Any
    symbol: str
    type: str            # "buy" or "sell"
    shares: int
    price: float         # 체결 가격 (슬리피지 적용 후)
    total: float         # shares * price
    fees: float
    entry_price: Optional[float] = None   # 매도 시 대응 매수 체결가

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": str(self.date),
            "symbol": self.symbol,
            "type": self.type,
            "shares": self.shares,
            "price": self.price,
            "total": self.total,
            "fees": self.fees,
            "entry_price": self.entry_price,
        }


class Portfolio:
    """단일 종목 백테스트 원장.

    매수 수량은 floor(현금 / 체결가)이고 수수료는 그 위에 따로 차감한다.
    따라서 전량 매수 직후 현금은 수수료만큼 음수가 될 수 있다.
    """

    def __init__(self, symbol: str, initial_cash: float, fee_rate: float = 0.001):
        self.symbol = symbol
        self.initial_cash = initial_cash
        self.cash = initial_cash
        self.fee_rate = fee_rate
        self.position = SimulatedPosition(symbol=symbol)
        self.trades: list[Trade] = []

    @property
    def shares(self) -> int:
        return self.position.shares

    def equity(self, price: float) -> float:
        """현금 + 보유 수량 * 현재가."""
        return self.cash + self.position.shares * price

    def affordable_shares(self, price: float) -> int:
        if price <= 0 or self.cash <= 0:
            return 0
        return math.floor(self.cash / price)

    def buy_all(self, price: float, date: Any) -> Optional[Trade]:
        """가용 현금 전부로 매수. 살 수 있는 수량이 0이면 None."""
        shares = self.affordable_shares(price)
        if shares <= 0:
            return None

        total = shares * price
        fees = total * self.fee_rate
        self.cash -= total + fees
        self.position.open(shares, price)

        trade = Trade(
            date=date,
            symbol=self.symbol,
            type="buy",
            shares=shares,
            price=price,
            total=total,
            fees=fees,
        )
        self.trades.append(trade)
        return trade

    def sell_all(self, price: float, date: Any) -> Optional[Trade]:
        """보유 수량 전량 매도. 보유가 없으면 None."""
        if self.position.shares <= 0:
            return None

        entry_price = self.position.entry_price
        shares = self.position.close()
        total = shares * price
        fees = total * self.fee_rate
        self.cash += total - fees

        trade = Trade(
            date=date,
            symbol=self.symbol,
            type="sell",
            shares=shares,
            price=price,
            total=total,
            fees=fees,
            entry_price=entry_price,
        )
        self.trades.append(trade)
        return trade
