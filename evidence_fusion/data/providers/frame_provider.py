"""
Reference providers backed by pandas OHLCV frames.

``DataFrameMarketData`` serves bars from per-timeframe frames with
``Open/High/Low/Close/Volume`` columns in chronological order.
``DataFrameIndicatorProvider`` computes the indicator lines the engine asks
for on top of those frames. Both are meant for the CLI, research and tests;
a live deployment plugs in its own providers.
"""
import logging
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
import pandas_ta as ta

from evidence_fusion.signal_generation.core import Bar, IndicatorKind, Timeframe
from .base_provider import IndicatorProvider, MarketDataProvider

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("Open", "High", "Low", "Close", "Volume")

DEFAULT_PERIODS: Dict[str, int] = {
    "ma_fast": 8,
    "ma_medium": 21,
    "ma_slow": 50,
    "ma_long": 200,
    "rsi": 14,
    "macd_fast": 12,
    "macd_slow": 26,
    "macd_signal": 9,
    "adx": 14,
    "stoch_k": 14,
    "stoch_d": 3,
    "stoch_smooth": 3,
    "atr": 14,
    "bb": 20,
}


def _column(result: Optional[pd.DataFrame], prefix: str, index: pd.Index) -> pd.Series:
    """Pick one output line of a multi-column pandas_ta indicator by name prefix."""
    if result is not None:
        for name in result.columns:
            if str(name).startswith(prefix):
                return result[name]
    return pd.Series(np.nan, index=index)


def _line(result: Optional[pd.Series], index: pd.Index) -> pd.Series:
    # pandas_ta returns None when the frame is shorter than the period
    if result is None:
        return pd.Series(np.nan, index=index)
    return result


def compute_indicator_frame(
    ohlcv: pd.DataFrame, periods: Optional[Mapping[str, int]] = None, bb_std: float = 2.0
) -> pd.DataFrame:
    """
    Computes every indicator line for one OHLCV frame with pandas_ta.

    Args:
        ohlcv: Chronological frame with ``Open/High/Low/Close/Volume``.
        periods: Overrides for ``DEFAULT_PERIODS``.
        bb_std: Bollinger band width in standard deviations.

    Returns:
        A frame indexed like ``ohlcv`` with one column per ``IndicatorKind`` value.
    """
    p = {**DEFAULT_PERIODS, **(periods or {})}
    high, low, close = ohlcv["High"], ohlcv["Low"], ohlcv["Close"]
    index = ohlcv.index
    out = pd.DataFrame(index=index)

    out[IndicatorKind.MA_FAST.value] = _line(ta.ema(close, length=p["ma_fast"]), index)
    out[IndicatorKind.MA_MEDIUM.value] = _line(ta.ema(close, length=p["ma_medium"]), index)
    out[IndicatorKind.MA_SLOW.value] = _line(ta.ema(close, length=p["ma_slow"]), index)
    out[IndicatorKind.MA_LONG.value] = _line(ta.sma(close, length=p["ma_long"]), index)

    rsi = _line(ta.rsi(close, length=p["rsi"]), index).copy()
    rsi.iloc[: p["rsi"]] = np.nan
    out[IndicatorKind.RSI.value] = rsi

    macd = ta.macd(close, fast=p["macd_fast"], slow=p["macd_slow"], signal=p["macd_signal"])
    out[IndicatorKind.MACD_MAIN.value] = _column(macd, "MACD_", index)
    out[IndicatorKind.MACD_SIGNAL.value] = _column(macd, "MACDs_", index)

    out[IndicatorKind.ATR.value] = _line(ta.atr(high, low, close, length=p["atr"]), index)
    adx = ta.adx(high, low, close, length=p["adx"])
    out[IndicatorKind.ADX.value] = _column(adx, "ADX_", index)
    out[IndicatorKind.PLUS_DI.value] = _column(adx, "DMP_", index)
    out[IndicatorKind.MINUS_DI.value] = _column(adx, "DMN_", index)

    stoch = ta.stoch(high, low, close, k=p["stoch_k"], d=p["stoch_d"], smooth_k=p["stoch_smooth"])
    out[IndicatorKind.STOCH_MAIN.value] = _column(stoch, "STOCHk_", index)
    out[IndicatorKind.STOCH_SIGNAL.value] = _column(stoch, "STOCHd_", index)

    bands = ta.bbands(close, length=p["bb"], std=bb_std)
    out[IndicatorKind.BB_LOWER.value] = _column(bands, "BBL_", index)
    out[IndicatorKind.BB_MIDDLE.value] = _column(bands, "BBM_", index)
    out[IndicatorKind.BB_UPPER.value] = _column(bands, "BBU_", index)

    out[IndicatorKind.VOLUME.value] = ohlcv["Volume"]
    return out


class DataFrameMarketData(MarketDataProvider):
    """
    Serves bars from in-memory frames keyed by instrument and timeframe.
    """

    def __init__(self, frames: Optional[Dict[str, Dict[Timeframe, pd.DataFrame]]] = None):
        self._frames: Dict[str, Dict[Timeframe, pd.DataFrame]] = {}
        self._tick_prices: Dict[str, float] = {}
        for instrument, by_tf in (frames or {}).items():
            for timeframe, frame in by_tf.items():
                self.add_frame(instrument, timeframe, frame)

    def add_frame(self, instrument: str, timeframe: Timeframe, frame: pd.DataFrame):
        missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
        if missing:
            raise ValueError(f"Frame for {instrument} {timeframe.name} is missing columns: {missing}")
        self._frames.setdefault(instrument, {})[timeframe] = frame.sort_index()

    def set_tick_price(self, instrument: str, price: float):
        self._tick_prices[instrument] = price

    def get_frame(self, instrument: str, timeframe: Timeframe) -> Optional[pd.DataFrame]:
        return self._frames.get(instrument, {}).get(timeframe)

    def timeframes(self, instrument: str) -> List[Timeframe]:
        return sorted(self._frames.get(instrument, {}), key=lambda tf: tf.minutes)

    def get_bars(
        self, instrument: str, timeframe: Timeframe, start_lag: int, count: int
    ) -> List[Bar]:
        frame = self.get_frame(instrument, timeframe)
        if frame is None or start_lag < 0 or count <= 0:
            return []

        end = len(frame) - start_lag
        if end <= 0:
            return []
        window = frame.iloc[max(0, end - count):end]

        bars = []
        for ts, row in window.iloc[::-1].iterrows():
            time_value = ts.to_pydatetime() if isinstance(ts, pd.Timestamp) else ts
            bars.append(
                Bar(
                    time=time_value,
                    open=float(row["Open"]),
                    high=float(row["High"]),
                    low=float(row["Low"]),
                    close=float(row["Close"]),
                    volume=float(row["Volume"]),
                )
            )
        return bars

    def get_tick_price(self, instrument: str) -> Optional[float]:
        if instrument in self._tick_prices:
            return self._tick_prices[instrument]
        available = self.timeframes(instrument)
        if not available:
            return None
        frame = self._frames[instrument][available[0]]
        if frame.empty:
            return None
        return float(frame["Close"].iloc[-1])


class DataFrameIndicatorProvider(IndicatorProvider):
    """
    Computes indicator lines from a ``DataFrameMarketData``.

    Results are memoized per (instrument, timeframe) and recomputed when the
    underlying frame grows.
    """

    def __init__(self, market_data: DataFrameMarketData, periods: Optional[Mapping[str, int]] = None):
        self.market_data = market_data
        self.periods = dict(periods or {})
        self._computed: Dict[Tuple[str, Timeframe], Tuple[int, pd.DataFrame]] = {}

    def _indicator_frame(self, instrument: str, timeframe: Timeframe) -> Optional[pd.DataFrame]:
        frame = self.market_data.get_frame(instrument, timeframe)
        if frame is None or frame.empty:
            return None

        key = (instrument, timeframe)
        cached = self._computed.get(key)
        if cached is not None and cached[0] == len(frame):
            return cached[1]

        logger.debug(f"Computing indicators for {instrument} {timeframe.name} ({len(frame)} bars)")
        indicators = compute_indicator_frame(frame, self.periods)
        self._computed[key] = (len(frame), indicators)
        return indicators

    def get_value(
        self, instrument: str, timeframe: Timeframe, kind: IndicatorKind, lag: int
    ) -> Optional[float]:
        indicators = self._indicator_frame(instrument, timeframe)
        if indicators is None or lag < 0 or lag >= len(indicators):
            return None

        value = indicators[kind.value].iloc[len(indicators) - 1 - lag]
        if pd.isna(value):
            return None
        return float(value)


def load_ohlcv_csv(path: str) -> pd.DataFrame:
    """
    Loads an OHLCV CSV with a leading date/time column.

    Column names are matched case-insensitively to ``Open/High/Low/Close/Volume``;
    a missing volume column is filled with zeros.
    """
    frame = pd.read_csv(path, index_col=0, parse_dates=True)
    frame.columns = [str(c).strip().capitalize() for c in frame.columns]
    if "Volume" not in frame.columns:
        frame["Volume"] = 0.0
    missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"{path} is missing columns: {missing}")
    return frame[list(REQUIRED_COLUMNS)].astype(float).sort_index()
