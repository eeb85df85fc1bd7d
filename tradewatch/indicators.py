# tradewatch/indicators.py
"""
Technical indicator engine.

All functions take either a sequence of Bars or a DataFrame with
open/high/low/close/volume columns, ordered ascending by time. While a series
is shorter than an indicator's period the neutral values below are returned
instead of raising, so callers must tolerate degraded output during warm-up.
"""
from dataclasses import dataclass, replace
from typing import List, Sequence, Union

import numpy as np
import pandas as pd

from tradewatch.datastructures import Bar

BarData = Union[Sequence[Bar], pd.DataFrame]

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']

# --- Warm-up defaults ---
WARMUP_AVERAGE = 0.0       # SMA, EMA, ATR
WARMUP_OSCILLATOR = 50.0   # RSI, Stochastic %K and %D

RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
STOCH_OVERBOUGHT = 80.0
STOCH_OVERSOLD = 20.0

SMA_PERIODS = (9, 20, 50, 100, 200)
EMA_PERIODS = (9, 20, 50)


@dataclass(frozen=True)
class RSI:
    value: float
    period: int
    is_overbought: bool
    is_oversold: bool

@dataclass(frozen=True)
class MACD:
    macd_line: float
    signal_line: float
    histogram: float
    crossover: str

@dataclass(frozen=True)
class ATR:
    value: float
    period: int

@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float
    bandwidth: float
    percent_b: float

@dataclass(frozen=True)
class Stochastic:
    k: float
    d: float
    is_overbought: bool
    is_oversold: bool

@dataclass(frozen=True)
class IndicatorBundle:
    sma: dict
    ema: dict
    rsi: RSI
    macd: MACD
    atr: ATR
    bollinger_bands: BollingerBands
    stochastic: Stochastic


def to_frame(data: BarData) -> pd.DataFrame:
    """Normalizes bars into an OHLCV DataFrame."""
    if isinstance(data, pd.DataFrame):
        return data
    rows = [
        {'timestamp': b.timestamp, 'open': b.open, 'high': b.high, 'low': b.low, 'close': b.close, 'volume': b.volume}
        for b in data
    ]
    if not rows:
        return pd.DataFrame(columns=OHLCV_COLUMNS)
    return pd.DataFrame(rows).set_index('timestamp')


def _ema_series(values: pd.Series, period: int) -> pd.Series:
    # adjust=False gives the recursive form seeded with the first value
    return values.ewm(span=period, adjust=False).mean()


def sma(data: BarData, period: int) -> float:
    df = to_frame(data)
    if len(df) < period:
        return WARMUP_AVERAGE
    return float(df['close'].astype(float).tail(period).mean())


def ema(data: BarData, period: int) -> float:
    df = to_frame(data)
    if len(df) < period:
        return WARMUP_AVERAGE
    return float(_ema_series(df['close'].astype(float), period).iloc[-1])


def rsi(data: BarData, period: int = 14) -> RSI:
    df = to_frame(data)
    if len(df) < period + 1:
        return RSI(WARMUP_OSCILLATOR, period, False, False)

    deltas = np.diff(df['close'].to_numpy(dtype=float))
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    # Wilder's smoothing, seeded with the plain mean of the first `period` deltas
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        value = WARMUP_OSCILLATOR if avg_gain == 0 else 100.0
    else:
        rs = avg_gain / avg_loss
        value = 100.0 - 100.0 / (1.0 + rs)

    return RSI(float(value), period, value > RSI_OVERBOUGHT, value < RSI_OVERSOLD)


def macd_series(data: BarData, fast: int = 12, slow: int = 26) -> pd.Series:
    """MACD line for every bar. Empty while fewer than ``slow`` bars exist."""
    df = to_frame(data)
    if len(df) < slow:
        return pd.Series(dtype=float)
    closes = df['close'].astype(float)
    return _ema_series(closes, fast) - _ema_series(closes, slow)


def macd(data: BarData, fast: int = 12, slow: int = 26, signal: int = 9) -> MACD:
    line = macd_series(data, fast, slow)
    if line.empty:
        return MACD(0.0, 0.0, 0.0, 'NONE')

    window = line.tail(signal)
    signal_value = float(_ema_series(window, signal).iloc[-1]) if len(window) >= signal else 0.0
    macd_value = float(line.iloc[-1])
    histogram = macd_value - signal_value

    if histogram > 0:
        crossover = 'BULLISH'
    elif histogram < 0:
        crossover = 'BEARISH'
    else:
        crossover = 'NONE'
    return MACD(macd_value, signal_value, histogram, crossover)


def true_range(data: BarData) -> pd.Series:
    """True range of every bar after the first."""
    df = to_frame(data)
    high = df['high'].astype(float)
    low = df['low'].astype(float)
    prev_close = df['close'].astype(float).shift(1)
    ranges = pd.concat([high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1)
    return ranges.max(axis=1).iloc[1:]


def atr(data: BarData, period: int = 14) -> ATR:
    df = to_frame(data)
    if len(df) < period:
        return ATR(WARMUP_AVERAGE, period)
    return ATR(float(true_range(df).tail(period).mean()), period)


def bollinger_bands(data: BarData, period: int = 20, num_std: float = 2.0) -> BollingerBands:
    df = to_frame(data)
    if len(df) < period:
        return BollingerBands(0.0, 0.0, 0.0, 0.0, 0.0)

    window = df['close'].astype(float).tail(period)
    middle = float(window.mean())
    std = float(window.std(ddof=0))
    upper = middle + std * num_std
    lower = middle - std * num_std
    width = upper - lower
    close = float(df['close'].iloc[-1])

    return BollingerBands(
        upper=upper,
        middle=middle,
        lower=lower,
        bandwidth=width / middle if middle else 0.0,
        percent_b=(close - lower) / width if width else 0.0,
    )


def _percent_k(window: pd.DataFrame) -> float:
    lowest = float(window['low'].min())
    highest = float(window['high'].max())
    if highest == lowest:
        return WARMUP_OSCILLATOR
    return (float(window['close'].iloc[-1]) - lowest) / (highest - lowest) * 100.0


def stochastic(data: BarData, period: int = 14, smooth: int = 3) -> Stochastic:
    df = to_frame(data)
    if len(df) < period:
        return Stochastic(WARMUP_OSCILLATOR, WARMUP_OSCILLATOR, False, False)

    # %K for the last `smooth` windows that fit in the series, oldest first
    k_values = []
    for offset in range(smooth - 1, -1, -1):
        end = len(df) - offset
        if end < period:
            continue
        k_values.append(_percent_k(df.iloc[end - period:end]))

    k = k_values[-1]
    d = float(np.mean(k_values))
    return Stochastic(k, d, k > STOCH_OVERBOUGHT, k < STOCH_OVERSOLD)


def calculate_all_indicators(data: BarData) -> IndicatorBundle:
    df = to_frame(data)
    return IndicatorBundle(
        sma={f'sma{p}': sma(df, p) for p in SMA_PERIODS},
        ema={f'ema{p}': ema(df, p) for p in EMA_PERIODS},
        rsi=rsi(df),
        macd=macd(df),
        atr=atr(df),
        bollinger_bands=bollinger_bands(df),
        stochastic=stochastic(df),
    )


def annotate_moving_averages(bars: Sequence[Bar]) -> List[Bar]:
    """Returns new bars carrying the SMA200, EMA12 and EMA26 values as of each bar."""
    if not bars:
        return []
    closes = to_frame(bars)['close'].astype(float)
    sma200 = closes.rolling(200).mean()
    ema12 = _ema_series(closes, 12)
    ema26 = _ema_series(closes, 26)

    annotated = []
    for i, bar in enumerate(bars):
        annotated.append(replace(
            bar,
            sma200=None if np.isnan(sma200.iloc[i]) else float(sma200.iloc[i]),
            ema12=float(ema12.iloc[i]) if i + 1 >= 12 else None,
            ema26=float(ema26.iloc[i]) if i + 1 >= 26 else None,
        ))
    return annotated
