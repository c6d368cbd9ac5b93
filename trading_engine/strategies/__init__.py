"""
전략 모듈.

[ 전략 등록 방식 ]
    @register("전략이름") 데코레이터를 붙이면 STRATEGY_REGISTRY에 자동 등록.
    run_backtest.py에서는 config.yaml의 strategy.name만으로 전략을 생성한다.

[ 새 전략 추가 방법 ]
    1. 이 디렉토리에 새 .py 파일 생성
    2. TradingStrategy를 상속받아 min_history / generate_signal 구현
    3. @register("이름") 데코레이터 추가
"""

from importlib import import_module
from pathlib import Path
from typing import Any

from trading_engine.core.trading_strategy import TradingStrategy

# 전략 이름 → 전략 클래스 매핑
STRATEGY_REGISTRY: dict[str, type[TradingStrategy]] = {}


def register(name: str):
    """전략 클래스를 STRATEGY_REGISTRY에 등록하는 데코레이터."""
    def decorator(cls: type[TradingStrategy]):
        existing = STRATEGY_REGISTRY.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"전략 이름 중복: '{name}' ({existing.__name__}, {cls.__name__})")
        STRATEGY_REGISTRY[name] = cls
        return cls
    return decorator


def create_strategy(name: str, params: dict[str, Any] | None = None) -> TradingStrategy:
    """이름으로 전략 인스턴스를 생성.

    Raises:
        ValueError: 등록되지 않은 전략 이름
    """
    try:
        strategy_cls = STRATEGY_REGISTRY[name]
    except KeyError:
        available = ", ".join(list_strategies())
        raise ValueError(f"알 수 없는 전략: '{name}'. 사용 가능: {available}") from None
    return strategy_cls(params=params)


def list_strategies() -> list[str]:
    return sorted(STRATEGY_REGISTRY)


def _auto_discover() -> None:
    """이 디렉토리의 전략 모듈을 임포트하여 @register가 실행되게 한다."""
    for py_file in sorted(Path(__file__).parent.glob("*.py")):
        if py_file.name.startswith("_"):
            continue
        import_module(f"{__name__}.{py_file.stem}")


_auto_discover()
