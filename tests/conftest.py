"""
Pytest configuration and shared fixtures for the evidence fusion test suite.

Providers are replaced by small in-memory stubs and time by a controllable
clock, so every test is deterministic.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import pytest

from evidence_fusion.data.indicator_cache import IndicatorCache
from evidence_fusion.data.providers.base_provider import IndicatorProvider, MarketDataProvider
from evidence_fusion.signal_generation.core import Bar, IndicatorKind, Timeframe


# ==============================
# Pytest Configuration
# ==============================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for component interactions"
    )


# ==============================
# Test Doubles
# ==============================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class StubMarketData(MarketDataProvider):
    """Bars stored chronologically per (instrument, timeframe)."""

    def __init__(self):
        self.bars: Dict[Tuple[str, Timeframe], List[Bar]] = {}
        self.tick_prices: Dict[str, float] = {}

    def set_bars(self, instrument: str, timeframe: Timeframe, bars: Sequence[Bar]):
        self.bars[(instrument, timeframe)] = list(bars)

    def append_bar(self, instrument: str, timeframe: Timeframe, bar: Bar):
        self.bars.setdefault((instrument, timeframe), []).append(bar)

    def get_bars(self, instrument: str, timeframe: Timeframe, start_lag: int, count: int) -> List[Bar]:
        chronological = self.bars.get((instrument, timeframe), [])
        end = len(chronological) - start_lag
        if end <= 0 or count <= 0:
            return []
        return list(reversed(chronological[max(0, end - count):end]))

    def get_tick_price(self, instrument: str) -> Optional[float]:
        return self.tick_prices.get(instrument)


class StubIndicatorProvider(IndicatorProvider):
    """
    Indicator values keyed by (instrument, timeframe, kind, lag).

    A stored exception instance is raised instead of returned.
    """

    def __init__(self):
        self.values: Dict[Tuple[str, Timeframe, IndicatorKind, int], object] = {}
        self.calls = 0

    def set(self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, value, lag: int = 0):
        self.values[(instrument, timeframe, kind, lag)] = value

    def set_series(self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, newest_first: Sequence[float]):
        for lag, value in enumerate(newest_first):
            self.set(instrument, timeframe, kind, value, lag)

    def fill(self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, value, lags: int = 40):
        for lag in range(lags):
            self.set(instrument, timeframe, kind, value, lag)

    def get_value(self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, lag: int) -> Optional[float]:
        self.calls += 1
        value = self.values.get((instrument, timeframe, kind, lag))
        if isinstance(value, Exception):
            raise value
        return value


def make_bar(
    close: float,
    open_: Optional[float] = None,
    high: Optional[float] = None,
    low: Optional[float] = None,
    volume: float = 1000.0,
    time: Optional[datetime] = None,
) -> Bar:
    open_ = close if open_ is None else open_
    return Bar(
        time=time or datetime(2024, 1, 1, tzinfo=timezone.utc),
        open=open_,
        high=max(open_, close) if high is None else high,
        low=min(open_, close) if low is None else low,
        close=close,
        volume=volume,
    )


def bars_from_closes(closes: Sequence[float], spread: float = 0.0005, volumes: Optional[Sequence[float]] = None) -> List[Bar]:
    """Chronological bars opening at the previous close."""
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    bars = []
    previous = closes[0]
    for i, close in enumerate(closes):
        bars.append(
            Bar(
                time=start + timedelta(hours=i),
                open=previous,
                high=max(previous, close) + spread,
                low=min(previous, close) - spread,
                close=close,
                volume=volumes[i] if volumes is not None else 1000.0,
            )
        )
        previous = close
    return bars


# ==============================
# Fixtures
# ==============================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def market_data() -> StubMarketData:
    return StubMarketData()


@pytest.fixture
def indicator_provider() -> StubIndicatorProvider:
    return StubIndicatorProvider()


@pytest.fixture
def indicator_cache(market_data, indicator_provider, clock) -> IndicatorCache:
    return IndicatorCache(market_data, indicator_provider, clock=clock)


@pytest.fixture
def bar_factory():
    return make_bar


@pytest.fixture
def bars_factory():
    return bars_from_closes


@pytest.fixture
def sample_ohlcv() -> pd.DataFrame:
    """Create sample hourly OHLCV data for testing."""
    np.random.seed(42)  # For reproducible tests

    periods = 400
    dates = pd.date_range(start='2024-01-01', periods=periods, freq='h')

    # Trending price series with noise
    base_price = 1.1000
    trend = np.linspace(0, 0.0200, periods)
    noise = np.cumsum(np.random.normal(0, 0.0004, periods))
    close_prices = base_price + trend + noise

    high = close_prices + np.random.uniform(0.0001, 0.0010, periods)
    low = close_prices - np.random.uniform(0.0001, 0.0010, periods)
    open_prices = low + np.random.uniform(0, 1, periods) * (high - low)
    volume = np.random.uniform(1000, 5000, periods)

    return pd.DataFrame({
        'Open': open_prices,
        'High': high,
        'Low': low,
        'Close': close_prices,
        'Volume': volume,
    }, index=dates)
