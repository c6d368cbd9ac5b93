"""
=============================================================================
전략 실행 & 백테스트 엔진 (Trading Engine)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (백테스트 진입점)          run_long_short.py (라이브 롱숏 진입점)
         │                                          │
         ├── utils/config.py   ← config.yaml        ├── brokers/ (BrokerAPI 구현체, 한 번 생성해 주입)
         ├── utils/logger.py   ← 로깅               ├── live/runner.py      ← 주기 실행 / 장 운영 확인
         │                                          ├── live/rebalancer.py  ← RANK→SIZE→RECONCILE→BATCH→RECOVER
         ├── data/market_data.py ← 봉 조회/검증      └── live/ranker.py      ← 10분 모멘텀 랭킹
         ├── strategies/sma_crossover.py ← 시그널
         └── backtest/engine.py  ← 봉 단위 시뮬레이션
               ├── data/portfolio.py    ← 현금/포지션/체결 기록
               └── backtest/metrics.py  ← MDD, 샤프, 승률


[ 핵심 추상 클래스 (core/) ]

    core/broker_api.py       → brokers/mock_broker.py::MockBroker
                             → brokers/alpaca_broker.py::AlpacaBroker
    core/data_provider.py    → brokers/mock_broker.py::MockDataProvider
                             → data/yahoo_provider.py::YahooDataProvider
    core/trading_strategy.py → strategies/sma_crossover.py::SMACrossoverStrategy
    core/errors.py           → DataGapError / SizingError / OrderRejection / GatewayUnavailableError


[ 데이터 흐름 ]

    백테스트: DataProvider → 종목별 봉 → SMA 시그널 → Portfolio 체결 → 자산 곡선 → 성과 지표
    라이브:   DataProvider → 모멘텀 점수 → 롱/숏 후보 → 사이징 → BrokerAPI 주문
"""

__version__ = "0.1.0"
