"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략 파라미터, 백테스트 파라미터, 라이브 롱숏 파라미터, 로깅 설정을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategyConfig (전략 이름/종목/파라미터)
    backtest:         → BacktestConfig (기간, 초기자금, 수수료/슬리피지)
    live:             → LiveConfig (유니버스, 숏 비율, 실행 간격)
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - run_backtest.py, run_long_short.py에서 Config.from_yaml()로 로드
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_UNIVERSE = ["AAPL", "MSFT", "GOOGL", "AMZN", "META", "TSLA", "NVDA", "JPM", "V", "WMT"]

# 화면/설정에서 쓰는 이름 → DataProvider timeframe
BACKTEST_TIMEFRAMES = {
    "H1": "1Hour",
    "H4": "4Hour",
    "DAILY": "1Day",
    "WEEKLY": "1Week",
    "MONTHLY": "1Month",
}


@dataclass
class StrategyConfig:
    """전략 설정. 각 전략 클래스의 DEFAULT_PARAMS에 params를 덮어쓴다."""
    name: str = "sma_crossover"
    tickers: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응."""
    start_date: str = "2023-01-01"
    end_date: str = "2023-12-31"
    timeframe: str = "1Day"
    initial_cash: float = 100_000
    fee_rate: float = 0.001          # 0.1%
    slippage_rate: float = 0.001     # 0.1%
    risk_free_rate: float = 0.02     # 연 2%
    max_workers: int = 4

    def resolved_timeframe(self) -> str:
        """'DAILY' 같은 별칭도 허용."""
        return BACKTEST_TIMEFRAMES.get(self.timeframe.upper(), self.timeframe)


@dataclass
class LiveConfig:
    """라이브 롱숏 설정. config.yaml의 live 섹션에 대응."""
    universe: list[str] = field(default_factory=lambda: list(DEFAULT_UNIVERSE))
    short_ratio: float = 0.30
    lookback_minutes: int = 10
    interval_seconds: int = 60
    close_buffer_minutes: int = 15
    max_workers: int = 8


def _section(cls, data: dict[str, Any] | None):
    """dataclass 필드에 해당하는 키만 골라 생성."""
    data = data or {}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        with open(Path(path), "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data or {})

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        strategy_data = data.get("strategy") or {}

        # params가 명시적으로 있으면 그것을 사용, 없으면 name/tickers 외 나머지를 params로
        if "params" in strategy_data:
            strategy_params = dict(strategy_data["params"] or {})
        else:
            strategy_params = {
                k: v for k, v in strategy_data.items()
                if k not in ("name", "tickers")
            }
        strategy = StrategyConfig(
            name=strategy_data.get("name", "sma_crossover"),
            tickers=list(strategy_data.get("tickers", [])),
            params=strategy_params,
        )

        return cls(
            strategy=strategy,
            backtest=_section(BacktestConfig, data.get("backtest")),
            live=_section(LiveConfig, data.get("live")),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)


def parse_param(param_str: str) -> tuple[str, Any]:
    """'key=value' 문자열을 파싱하여 (key, value) 반환. 숫자/불리언은 자동 변환."""
    key, _, value = param_str.partition("=")
    key = key.strip()
    value = value.strip()

    if value.lower() in ("true", "yes"):
        return key, True
    if value.lower() in ("false", "no"):
        return key, False
    try:
        if "." in value:
            return key, float(value)
        return key, int(value)
    except ValueError:
        return key, value
