# tradewatch/patterns.py
"""
Candlestick pattern detection.

Every bar receives at most one label. Candidates are tried in the order of
``PATTERN_PRIORITY`` and the first match wins. Two-bar patterns compare a bar
with its predecessor and are only evaluated from ``TWO_BAR_START_INDEX`` on.
"""
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from tradewatch.datastructures import Bar

DOJI_BODY_RATIO = 0.1
HAMMER_SHADOW_RATIO = 2.0
HAMMER_OPPOSITE_SHADOW_RATIO = 0.5
TWO_BAR_START_INDEX = 2


def body(bar: Bar) -> float:
    return abs(bar.close - bar.open)

def candle_range(bar: Bar) -> float:
    return bar.high - bar.low

def upper_shadow(bar: Bar) -> float:
    return bar.high - max(bar.open, bar.close)

def lower_shadow(bar: Bar) -> float:
    return min(bar.open, bar.close) - bar.low

def is_bullish(bar: Bar) -> bool:
    return bar.close > bar.open

def is_bearish(bar: Bar) -> bool:
    return bar.close < bar.open


def is_doji(bar: Bar, previous: Optional[Bar] = None) -> bool:
    rng = candle_range(bar)
    if rng <= 0:
        return True
    return body(bar) < DOJI_BODY_RATIO * rng

def is_hammer(bar: Bar, previous: Optional[Bar] = None) -> bool:
    b = body(bar)
    return lower_shadow(bar) > HAMMER_SHADOW_RATIO * b and upper_shadow(bar) < HAMMER_OPPOSITE_SHADOW_RATIO * b

def is_shooting_star(bar: Bar, previous: Optional[Bar] = None) -> bool:
    b = body(bar)
    return upper_shadow(bar) > HAMMER_SHADOW_RATIO * b and lower_shadow(bar) < HAMMER_OPPOSITE_SHADOW_RATIO * b

def _engulfs(bar: Bar, previous: Bar) -> bool:
    return (max(bar.open, bar.close) >= max(previous.open, previous.close)
            and min(bar.open, bar.close) <= min(previous.open, previous.close)
            and body(bar) > body(previous))

def _contained(bar: Bar, previous: Bar) -> bool:
    return (max(bar.open, bar.close) <= max(previous.open, previous.close)
            and min(bar.open, bar.close) >= min(previous.open, previous.close)
            and body(bar) < body(previous))

def is_bullish_engulfing(bar: Bar, previous: Optional[Bar]) -> bool:
    return previous is not None and is_bearish(previous) and is_bullish(bar) and _engulfs(bar, previous)

def is_bearish_engulfing(bar: Bar, previous: Optional[Bar]) -> bool:
    return previous is not None and is_bullish(previous) and is_bearish(bar) and _engulfs(bar, previous)

def is_bullish_harami(bar: Bar, previous: Optional[Bar]) -> bool:
    return previous is not None and is_bearish(previous) and is_bullish(bar) and _contained(bar, previous)

def is_bearish_harami(bar: Bar, previous: Optional[Bar]) -> bool:
    return previous is not None and is_bullish(previous) and is_bearish(bar) and _contained(bar, previous)


# (label, direction, needs previous bar, predicate), in match priority order
PATTERN_PRIORITY: Tuple[Tuple[str, str, bool, Callable[[Bar, Optional[Bar]], bool]], ...] = (
    ('Doji', 'NEUTRAL', False, is_doji),
    ('Hammer', 'BULLISH', False, is_hammer),
    ('Shooting Star', 'BEARISH', False, is_shooting_star),
    ('Bullish Engulfing', 'BULLISH', True, is_bullish_engulfing),
    ('Bearish Engulfing', 'BEARISH', True, is_bearish_engulfing),
    ('Bullish Harami', 'BULLISH', True, is_bullish_harami),
    ('Bearish Harami', 'BEARISH', True, is_bearish_harami),
)


def classify_bar(bars: Sequence[Bar], index: int) -> Optional[Tuple[str, str]]:
    """Returns the (label, direction) of the first matching pattern at ``index``."""
    bar = bars[index]
    previous = bars[index - 1] if index >= TWO_BAR_START_INDEX else None
    for label, direction, needs_previous, predicate in PATTERN_PRIORITY:
        if needs_previous and previous is None:
            continue
        if predicate(bar, previous):
            return label, direction
    return None


def detect_patterns(bars: Sequence[Bar]) -> List[Bar]:
    """Labels each bar with at most one pattern. Already-labeled bars are kept as they are."""
    result = []
    for i, bar in enumerate(bars):
        if bar.pattern:
            result.append(bar)
            continue
        match = classify_bar(bars, i)
        if match is None:
            result.append(bar)
        else:
            label, direction = match
            result.append(replace(bar, pattern=label, pattern_direction=direction))
    return result
