"""
Abstract interfaces for the data the engine consumes.

Market data and indicator math are supplied from outside the core. Any
implementation may fail or return ``None``; the indicator layer copes with
both.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

import pandas as pd

from evidence_fusion.signal_generation.core import Bar, IndicatorKind, Timeframe


class MarketDataProvider(ABC):
    """
    Abstract base class for OHLCV and tick providers.

    Lags count closed bars backwards from the most recent one, which has lag 0.
    """

    @abstractmethod
    def get_bars(
        self, instrument: str, timeframe: Timeframe, start_lag: int, count: int
    ) -> List[Bar]:
        """
        Fetches consecutive bars, newest first.

        Args:
            instrument: Symbol to fetch bars for.
            timeframe: Chart timeframe.
            start_lag: Lag of the first (newest) bar returned.
            count: Maximum number of bars.

        Returns:
            Up to ``count`` bars; fewer when history runs out.
        """
        pass

    @abstractmethod
    def get_tick_price(self, instrument: str) -> Optional[float]:
        """
        Fetches the latest traded or quoted price.

        Args:
            instrument: Symbol to fetch the price for.

        Returns:
            The current price, or None if unavailable.
        """
        pass

    def get_bar(self, instrument: str, timeframe: Timeframe, lag: int) -> Optional[Bar]:
        bars = self.get_bars(instrument, timeframe, lag, 1)
        return bars[0] if bars else None

    def to_frame(self, bars: List[Bar]) -> pd.DataFrame:
        """
        Converts bars (newest first) into a chronologically ordered DataFrame.
        """
        if not bars:
            raise ValueError("No bars to convert")

        ordered = list(reversed(bars))
        return pd.DataFrame(
            {
                "Open": [b.open for b in ordered],
                "High": [b.high for b in ordered],
                "Low": [b.low for b in ordered],
                "Close": [b.close for b in ordered],
                "Volume": [b.volume for b in ordered],
            },
            index=pd.DatetimeIndex([b.time for b in ordered]),
        )


class IndicatorProvider(ABC):
    """
    Abstract base class for indicator providers.
    """

    @abstractmethod
    def get_value(
        self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, lag: int
    ) -> Optional[float]:
        """
        Fetches one indicator value.

        Args:
            instrument: Symbol the indicator is computed on.
            timeframe: Chart timeframe.
            kind: Which indicator line.
            lag: Closed-bar lag, 0 being the latest bar.

        Returns:
            The value, ``None`` or the ``EMPTY_VALUE`` sentinel. Implementations
            may also raise on transient failures.
        """
        pass
