from __future__ import annotations

import json
from pathlib import Path

from trading_engine.utils.config import Config, parse_param


def test_defaults_match_documented_values() -> None:
    config = Config()
    assert config.strategy.name == "sma_crossover"
    assert config.backtest.initial_cash == 100_000
    assert config.backtest.fee_rate == 0.001
    assert config.backtest.slippage_rate == 0.001
    assert config.live.short_ratio == 0.30
    assert config.live.lookback_minutes == 10
    assert config.live.interval_seconds == 60
    assert len(config.live.universe) == 10


def test_from_yaml_reads_sections_and_ignores_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join([
            "strategy:",
            "  name: sma_crossover",
            "  tickers: [AAPL]",
            "  fast_window: 10",
            "  slow_window: 30",
            "backtest:",
            "  timeframe: MONTHLY",
            "  initial_cash: 50000",
            "  unknown_key: 1",
            "live:",
            "  universe: [AAPL, MSFT, NVDA, TSLA]",
            "log_level: DEBUG",
        ]),
        encoding="utf-8",
    )

    config = Config.from_yaml(path)

    assert config.strategy.tickers == ["AAPL"]
    assert config.strategy.params == {"fast_window": 10, "slow_window": 30}
    assert config.backtest.initial_cash == 50000
    assert config.backtest.resolved_timeframe() == "1Month"
    assert config.live.universe == ["AAPL", "MSFT", "NVDA", "TSLA"]
    assert config.live.short_ratio == 0.30
    assert config.log_level == "DEBUG"


def test_from_json_and_yaml_round_trip(tmp_path: Path) -> None:
    json_path = tmp_path / "config.json"
    json_path.write_text(json.dumps({"strategy": {"params": {"fast_window": 5}}}), encoding="utf-8")
    config = Config.from_json(json_path)
    assert config.strategy.params == {"fast_window": 5}

    yaml_path = tmp_path / "out" / "config.yaml"
    config.save_yaml(yaml_path)
    assert Config.from_yaml(yaml_path).strategy.params == {"fast_window": 5}


def test_timeframe_passthrough() -> None:
    config = Config()
    config.backtest.timeframe = "1Hour"
    assert config.backtest.resolved_timeframe() == "1Hour"
    config.backtest.timeframe = "daily"
    assert config.backtest.resolved_timeframe() == "1Day"


def test_parse_param_converts_types() -> None:
    assert parse_param("fast_window=10") == ("fast_window", 10)
    assert parse_param("short_ratio=0.25") == ("short_ratio", 0.25)
    assert parse_param("require_crossover=true") == ("require_crossover", True)
    assert parse_param("name=sma") == ("name", "sma")
