from dataclasses import replace

from tests.conftest import make_bar
from tradewatch.patterns import PATTERN_PRIORITY, classify_bar, detect_patterns


def _neutral(i, price=100.0):
    # Plain bullish candle matching no single-bar pattern
    return make_bar(i, price + 2.0, open_=price, high=price + 2.2, low=price - 0.2)


def test_priority_order_is_explicit():
    assert [label for label, *_ in PATTERN_PRIORITY] == [
        "Doji",
        "Hammer",
        "Shooting Star",
        "Bullish Engulfing",
        "Bearish Engulfing",
        "Bullish Harami",
        "Bearish Harami",
    ]


def test_output_has_same_length_and_input_untouched():
    bars = [_neutral(i) for i in range(5)]
    result = detect_patterns(bars)
    assert len(result) == len(bars)
    assert all(b.pattern is None for b in bars)


def test_doji():
    bar = make_bar(0, 100.05, open_=100.0, high=101.0, low=99.0)
    [labeled] = detect_patterns([bar])
    assert labeled.pattern == "Doji"
    assert labeled.pattern_direction == "NEUTRAL"
    assert (labeled.open, labeled.high, labeled.low, labeled.close) == (bar.open, bar.high, bar.low, bar.close)


def test_hammer():
    # body 1, lower shadow 3, upper shadow 0.2
    bar = make_bar(0, 101.0, open_=100.0, high=101.2, low=97.0)
    [labeled] = detect_patterns([bar])
    assert labeled.pattern == "Hammer"
    assert labeled.pattern_direction == "BULLISH"


def test_shooting_star():
    bar = make_bar(0, 100.0, open_=101.0, high=104.0, low=99.8)
    [labeled] = detect_patterns([bar])
    assert labeled.pattern == "Shooting Star"
    assert labeled.pattern_direction == "BEARISH"


def test_bullish_engulfing():
    bars = [
        _neutral(0),
        _neutral(1),
        make_bar(2, 100.0, open_=102.0, high=102.5, low=99.5),   # bearish, body 2
        make_bar(3, 103.0, open_=99.0, high=103.5, low=98.5),    # bullish, body 4 engulfs
    ]
    result = detect_patterns(bars)
    assert result[3].pattern == "Bullish Engulfing"
    assert result[3].pattern_direction == "BULLISH"


def test_bearish_harami():
    bars = [
        _neutral(0),
        _neutral(1),
        make_bar(2, 106.0, open_=100.0, high=106.5, low=99.5),   # bullish, body 6
        make_bar(3, 102.0, open_=104.0, high=104.5, low=101.5),  # bearish, inside
    ]
    result = detect_patterns(bars)
    assert result[3].pattern == "Bearish Harami"
    assert result[3].pattern_direction == "BEARISH"


def test_two_bar_patterns_need_stable_lookback():
    bars = [
        make_bar(0, 100.0, open_=102.0, high=102.5, low=99.5),
        make_bar(1, 103.0, open_=99.0, high=103.5, low=98.5),    # would engulf bar 0
    ]
    assert classify_bar(bars, 1) is None
    assert detect_patterns(bars)[1].pattern is None


def test_first_match_wins_for_doji_that_also_engulfs():
    bars = [
        _neutral(0),
        _neutral(1),
        make_bar(2, 100.0, open_=100.1, high=100.2, low=99.9),
        make_bar(3, 100.2, open_=99.8, high=110.0, low=90.0),    # tiny body in huge range
    ]
    assert detect_patterns(bars)[3].pattern == "Doji"


def test_detector_is_idempotent():
    bars = [
        _neutral(0),
        make_bar(1, 101.0, open_=100.0, high=101.2, low=97.0),
        make_bar(2, 100.0, open_=102.0, high=102.5, low=99.5),
        make_bar(3, 103.0, open_=99.0, high=103.5, low=98.5),
        make_bar(4, 100.05, open_=100.0, high=101.0, low=99.0),
    ]
    once = detect_patterns(bars)
    twice = detect_patterns(once)
    assert [b.pattern for b in twice] == [b.pattern for b in once]
    assert [b.pattern_direction for b in twice] == [b.pattern_direction for b in once]


def test_existing_label_is_never_reassigned():
    bar = make_bar(0, 101.0, open_=100.0, high=101.2, low=97.0)
    labeled = replace(bar, pattern="Custom", pattern_direction="NEUTRAL")
    assert detect_patterns([labeled])[0].pattern == "Custom"
