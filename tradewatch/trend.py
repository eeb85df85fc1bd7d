# tradewatch/trend.py
"""Qualitative trend state, key price levels and volume regime."""
from dataclasses import dataclass, field
from typing import List, Tuple

import pandas as pd

from tradewatch.indicators import BarData, IndicatorBundle, to_frame

STRENGTH_BASE = 0.5
STRENGTH_STEP = 0.1
STRENGTH_SMAS = ('sma20', 'sma50', 'sma200')

LEVEL_LOOKAROUND = 2
VOLUME_RECENT_WINDOW = 5
VOLUME_BASELINE_WINDOW = 15
VOLUME_CHANGE_THRESHOLD = 10.0   # percent
VOLUME_AVERAGE_WINDOW = 20
HIGH_VOLUME_MULTIPLIER = 1.5
SPIKE_MULTIPLIER = 2.0
MAX_SPIKES = 5


@dataclass(frozen=True)
class TrendAnalysis:
    primary_trend: str
    strength: float
    support: List[float]
    resistance: List[float]
    above_ma200: bool
    above_ma50: bool
    distance_from_ma200: float
    distance_from_ma50: float


@dataclass(frozen=True)
class VolumeAnalysis:
    average_volume: float
    relative_volume: float
    volume_trend: str
    volume_change: float
    is_high_volume: bool
    volume_spikes: List[Tuple[object, float]] = field(default_factory=list)


def _last_close(df: pd.DataFrame) -> float:
    return float(df['close'].iloc[-1])


def determine_primary_trend(data: BarData, indicators: IndicatorBundle) -> str:
    df = to_frame(data)
    if df.empty:
        return 'NEUTRAL'
    price = _last_close(df)
    smas = indicators.sma.values()
    above_all = all(price > value for value in smas)
    below_all = all(price < value for value in smas)

    if above_all and indicators.macd.crossover == 'BULLISH' and not indicators.rsi.is_overbought:
        return 'BULLISH'
    if below_all and indicators.macd.crossover == 'BEARISH' and not indicators.rsi.is_oversold:
        return 'BEARISH'
    return 'NEUTRAL'


def calculate_trend_strength(data: BarData, indicators: IndicatorBundle) -> float:
    df = to_frame(data)
    if df.empty:
        return STRENGTH_BASE
    price = _last_close(df)
    strength = STRENGTH_BASE

    for key in STRENGTH_SMAS:
        if price > indicators.sma[key]:
            strength += STRENGTH_STEP

    if indicators.rsi.value > 60:
        strength += STRENGTH_STEP
    if indicators.rsi.value < 40:
        strength -= STRENGTH_STEP

    if indicators.macd.crossover == 'BULLISH':
        strength += STRENGTH_STEP
    if indicators.macd.crossover == 'BEARISH':
        strength -= STRENGTH_STEP

    return float(min(1.0, max(0.0, strength)))


def find_key_levels(data: BarData) -> Tuple[List[float], List[float]]:
    """
    Support is a low strictly below the two lows on each side of it; resistance
    is a high strictly above the two highs on each side. Both lists are
    de-duplicated and sorted ascending.
    """
    df = to_frame(data)
    lows = df['low'].to_numpy(dtype=float)
    highs = df['high'].to_numpy(dtype=float)
    n = LEVEL_LOOKAROUND
    support, resistance = set(), set()

    for i in range(n, len(df) - n):
        neighbours = list(range(i - n, i)) + list(range(i + 1, i + n + 1))
        if all(lows[i] < lows[j] for j in neighbours):
            support.add(float(lows[i]))
        if all(highs[i] > highs[j] for j in neighbours):
            resistance.add(float(highs[i]))

    return sorted(support), sorted(resistance)


def volume_change_percent(data: BarData) -> float:
    """Change of the recent volume mean against the preceding baseline, in percent."""
    volumes = to_frame(data)['volume'].to_numpy(dtype=float)
    recent = volumes[-VOLUME_RECENT_WINDOW:]
    baseline = volumes[-(VOLUME_RECENT_WINDOW + VOLUME_BASELINE_WINDOW):-VOLUME_RECENT_WINDOW]
    if len(recent) == 0 or len(baseline) == 0:
        return 0.0
    baseline_mean = baseline.mean()
    if baseline_mean == 0:
        return 0.0
    return float((recent.mean() - baseline_mean) / baseline_mean * 100.0)


def determine_volume_trend(data: BarData) -> str:
    change = volume_change_percent(data)
    if change > VOLUME_CHANGE_THRESHOLD:
        return 'INCREASING'
    if change < -VOLUME_CHANGE_THRESHOLD:
        return 'DECREASING'
    return 'NEUTRAL'


def _percent_distance(price: float, level: float) -> float:
    return (price - level) / level * 100.0 if level else 0.0


def analyze_trend(data: BarData, indicators: IndicatorBundle) -> TrendAnalysis:
    df = to_frame(data)
    if df.empty:
        raise ValueError("Cannot analyze trend of an empty bar series")
    price = _last_close(df)
    support, resistance = find_key_levels(df)
    sma50 = indicators.sma['sma50']
    sma200 = indicators.sma['sma200']
    return TrendAnalysis(
        primary_trend=determine_primary_trend(df, indicators),
        strength=calculate_trend_strength(df, indicators),
        support=support,
        resistance=resistance,
        above_ma200=price > sma200,
        above_ma50=price > sma50,
        distance_from_ma200=_percent_distance(price, sma200),
        distance_from_ma50=_percent_distance(price, sma50),
    )


def analyze_volume(data: BarData) -> VolumeAnalysis:
    df = to_frame(data)
    if df.empty:
        raise ValueError("Cannot analyze volume of an empty bar series")
    volumes = df['volume'].astype(float)
    average = float(volumes.tail(VOLUME_AVERAGE_WINDOW).mean())
    current = float(volumes.iloc[-1])

    spikes = []
    if average > 0:
        mask = volumes > average * SPIKE_MULTIPLIER
        spikes = sorted(
            ((ts, float(v / average)) for ts, v in volumes[mask].items()),
            key=lambda item: item[1],
            reverse=True,
        )[:MAX_SPIKES]

    return VolumeAnalysis(
        average_volume=average,
        relative_volume=current / average if average else 0.0,
        volume_trend=determine_volume_trend(df),
        volume_change=volume_change_percent(df),
        is_high_volume=current > average * HIGH_VOLUME_MULTIPLIER,
        volume_spikes=spikes,
    )
