"""
Plausibility metadata for indicator readings.

This module holds the per-asset-class, per-timeframe range tables used to
reject implausible provider values, the asset-class defaults used as the
last fallback, and the symbol heuristics that map an instrument to its
asset class.
"""

import math
import re
from typing import Dict, Optional, Tuple

from evidence_fusion.signal_generation.core import AssetClass, IndicatorKind, Timeframe

# Values at or above this magnitude are treated as garbage.
ABSURD_MAGNITUDE = 1e12

# Oscillators with a natural range.
BOUNDED_RANGES: Dict[IndicatorKind, Tuple[float, float]] = {
    IndicatorKind.RSI: (0.0, 100.0),
    IndicatorKind.ADX: (0.0, 100.0),
    IndicatorKind.PLUS_DI: (0.0, 100.0),
    IndicatorKind.MINUS_DI: (0.0, 100.0),
    IndicatorKind.STOCH_MAIN: (0.0, 100.0),
    IndicatorKind.STOCH_SIGNAL: (0.0, 100.0),
}

# Largest allowed |level / price - 1| for moving averages and bands.
PRICE_DEVIATION_BY_TIMEFRAME: Dict[Timeframe, float] = {
    Timeframe.M1: 0.02,
    Timeframe.M5: 0.03,
    Timeframe.M15: 0.05,
    Timeframe.M30: 0.07,
    Timeframe.H1: 0.10,
    Timeframe.H4: 0.20,
    Timeframe.D1: 0.50,
}

# ATR as a fraction of price, for currency pairs.
ATR_RATIO_BY_TIMEFRAME: Dict[Timeframe, Tuple[float, float]] = {
    Timeframe.M1: (1e-6, 0.005),
    Timeframe.M5: (2e-6, 0.008),
    Timeframe.M15: (5e-6, 0.012),
    Timeframe.M30: (1e-5, 0.02),
    Timeframe.H1: (1e-5, 0.03),
    Timeframe.H4: (2e-5, 0.05),
    Timeframe.D1: (5e-5, 0.10),
}

# Widening applied to the currency-pair tables for more volatile classes.
ASSET_CLASS_VOLATILITY: Dict[AssetClass, float] = {
    AssetClass.FOREX: 1.0,
    AssetClass.METAL: 1.5,
    AssetClass.INDEX: 1.5,
    AssetClass.CRYPTO: 3.0,
}

# Typical H1 ATR as a fraction of price, used when nothing better exists.
DEFAULT_ATR_RATIO: Dict[AssetClass, float] = {
    AssetClass.FOREX: 0.0015,
    AssetClass.METAL: 0.003,
    AssetClass.INDEX: 0.004,
    AssetClass.CRYPTO: 0.01,
}

# Asset-class independent defaults for oscillators.
OSCILLATOR_DEFAULTS: Dict[IndicatorKind, float] = {
    IndicatorKind.RSI: 50.0,
    IndicatorKind.STOCH_MAIN: 50.0,
    IndicatorKind.STOCH_SIGNAL: 50.0,
    IndicatorKind.ADX: 20.0,
    IndicatorKind.PLUS_DI: 20.0,
    IndicatorKind.MINUS_DI: 20.0,
    IndicatorKind.MACD_MAIN: 0.0,
    IndicatorKind.MACD_SIGNAL: 0.0,
}

INDICATOR_METADATA: Dict[IndicatorKind, Dict[str, str]] = {
    IndicatorKind.MA_FAST: {"name": "Fast moving average", "category": "trend"},
    IndicatorKind.MA_MEDIUM: {"name": "Medium moving average", "category": "trend"},
    IndicatorKind.MA_SLOW: {"name": "Slow moving average", "category": "trend"},
    IndicatorKind.MA_LONG: {"name": "Long-horizon moving average", "category": "trend"},
    IndicatorKind.RSI: {"name": "Relative Strength Index", "category": "momentum"},
    IndicatorKind.MACD_MAIN: {"name": "MACD main line", "category": "trend"},
    IndicatorKind.MACD_SIGNAL: {"name": "MACD signal line", "category": "trend"},
    IndicatorKind.ADX: {"name": "Average Directional Index", "category": "trend"},
    IndicatorKind.PLUS_DI: {"name": "Plus Directional Indicator", "category": "trend"},
    IndicatorKind.MINUS_DI: {"name": "Minus Directional Indicator", "category": "trend"},
    IndicatorKind.STOCH_MAIN: {"name": "Stochastic %K", "category": "momentum"},
    IndicatorKind.STOCH_SIGNAL: {"name": "Stochastic %D", "category": "momentum"},
    IndicatorKind.ATR: {"name": "Average True Range", "category": "volatility"},
    IndicatorKind.BB_UPPER: {"name": "Bollinger upper band", "category": "volatility"},
    IndicatorKind.BB_MIDDLE: {"name": "Bollinger middle band", "category": "volatility"},
    IndicatorKind.BB_LOWER: {"name": "Bollinger lower band", "category": "volatility"},
    IndicatorKind.VOLUME: {"name": "Volume", "category": "volume"},
}

_CRYPTO_TOKENS = ("BTC", "ETH", "XRP", "LTC", "SOL", "ADA", "DOGE", "BNB", "USDT")
_METAL_TOKENS = ("XAU", "XAG", "XPT", "XPD", "GOLD", "SILVER")
_CURRENCY_CODES = {
    "USD", "EUR", "GBP", "JPY", "CHF", "AUD", "NZD", "CAD", "SEK", "NOK",
    "DKK", "PLN", "HUF", "CZK", "TRY", "ZAR", "MXN", "SGD", "HKD", "CNH",
}


def detect_asset_class(instrument: str) -> AssetClass:
    """
    Guess the asset class from a broker symbol.

    Suffixes such as ``.m`` or ``-ECN`` are ignored.
    """
    symbol = re.sub(r"[^A-Z]", "", instrument.upper().split(".")[0])
    if any(token in symbol for token in _METAL_TOKENS):
        return AssetClass.METAL
    if any(token in symbol for token in _CRYPTO_TOKENS):
        return AssetClass.CRYPTO
    if len(symbol) == 6 and symbol[:3] in _CURRENCY_CODES and symbol[3:] in _CURRENCY_CODES:
        return AssetClass.FOREX
    return AssetClass.INDEX


def is_numerically_sane(value: Optional[float]) -> bool:
    """Finite, not absurdly large and not the empty sentinel."""
    if value is None:
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and abs(number) < ABSURD_MAGNITUDE


def plausible_range(
    kind: IndicatorKind,
    timeframe: Timeframe,
    asset_class: AssetClass,
    price: Optional[float] = None,
) -> Optional[Tuple[float, float]]:
    """
    Closed interval a reading must fall in to be accepted.

    Price-scaled kinds need a reference price; without one ``None`` is
    returned and only numeric sanity applies.
    """
    if kind in BOUNDED_RANGES:
        return BOUNDED_RANGES[kind]
    if kind is IndicatorKind.VOLUME:
        return 0.0, ABSURD_MAGNITUDE

    if price is None or price <= 0:
        return None

    widening = ASSET_CLASS_VOLATILITY[asset_class]
    if kind.is_price_level:
        deviation = min(PRICE_DEVIATION_BY_TIMEFRAME[timeframe] * widening, 0.95)
        return price * (1 - deviation), price * (1 + deviation)

    low_ratio, high_ratio = ATR_RATIO_BY_TIMEFRAME[timeframe]
    if kind is IndicatorKind.ATR:
        return price * low_ratio, price * high_ratio * widening
    # MACD lines are differences of averages; bound them like ATR, both signs.
    bound = price * high_ratio * widening
    return -bound, bound


def default_value(
    kind: IndicatorKind,
    timeframe: Timeframe,
    asset_class: AssetClass,
    price: Optional[float] = None,
) -> Optional[float]:
    """
    Hard-coded last-resort value, or None when no sensible default exists.
    """
    if kind in OSCILLATOR_DEFAULTS:
        return OSCILLATOR_DEFAULTS[kind]
    if price is None or price <= 0:
        return None
    if kind.is_price_level:
        return price
    if kind is IndicatorKind.ATR:
        scale = math.sqrt(timeframe.minutes / Timeframe.H1.minutes)
        return price * DEFAULT_ATR_RATIO[asset_class] * scale
    return None
