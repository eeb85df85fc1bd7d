from dataclasses import replace

import pandas as pd
import pytest

from tests.conftest import bars_from_closes, make_bar
from tradewatch import indicators as ind


class TestWarmupDefaults:
    """Short series return neutral values instead of failing."""

    def test_sma_and_ema_return_zero(self):
        bars = bars_from_closes([100.0] * 8)
        assert ind.sma(bars, 9) == 0
        assert ind.ema(bars, 9) == 0
        assert ind.sma(bars, 200) == 0

    def test_rsi_neutral_without_enough_deltas(self):
        bars = bars_from_closes([100.0 + i for i in range(14)])
        result = ind.rsi(bars)
        assert result.value == 50
        assert not result.is_overbought
        assert not result.is_oversold

    def test_atr_bollinger_stochastic(self):
        bars = bars_from_closes([100.0 + i for i in range(10)])
        assert ind.atr(bars).value == 0
        assert ind.bollinger_bands(bars) == ind.BollingerBands(0.0, 0.0, 0.0, 0.0, 0.0)
        stoch = ind.stochastic(bars)
        assert (stoch.k, stoch.d, stoch.is_overbought, stoch.is_oversold) == (50, 50, False, False)

    def test_macd_needs_slow_period(self):
        bars = bars_from_closes([100.0 + i for i in range(25)])
        assert ind.macd(bars) == ind.MACD(0.0, 0.0, 0.0, "NONE")

    def test_empty_series(self):
        assert ind.sma([], 5) == 0
        assert ind.rsi([]).value == 50


class TestMovingAverages:

    def test_sma_uses_trailing_window(self):
        bars = bars_from_closes([float(i) for i in range(1, 21)])
        assert ind.sma(bars, 5) == pytest.approx(18.0)

    def test_ema_recursive_seeded_with_first_close(self):
        bars = bars_from_closes([1.0, 2.0, 3.0])
        # multiplier 0.5: 1 -> 1.5 -> 2.25
        assert ind.ema(bars, 3) == pytest.approx(2.25)

    def test_accepts_dataframe(self):
        df = pd.DataFrame({
            "open": [1.0, 2.0, 3.0],
            "high": [1.0, 2.0, 3.0],
            "low": [1.0, 2.0, 3.0],
            "close": [1.0, 2.0, 3.0],
            "volume": [10, 10, 10],
        })
        assert ind.sma(df, 3) == pytest.approx(2.0)


class TestRSI:

    def test_strictly_increasing_is_100(self, rising_bars):
        result = ind.rsi(rising_bars)
        assert result.value == pytest.approx(100.0)
        assert result.is_overbought

    def test_strictly_decreasing_is_0(self, falling_bars):
        result = ind.rsi(falling_bars)
        assert result.value == pytest.approx(0.0)
        assert result.is_oversold

    def test_flat_series_is_neutral(self):
        assert ind.rsi(bars_from_closes([100.0] * 30)).value == 50

    def test_wilder_smoothing(self):
        # Alternating +2 / -1 moves: average gain stays above average loss
        closes = [100.0]
        for i in range(30):
            closes.append(closes[-1] + (2.0 if i % 2 == 0 else -1.0))
        value = ind.rsi(bars_from_closes(closes)).value
        assert 55 < value < 75


class TestMACD:

    def test_rising_series_is_bullish(self, rising_bars):
        result = ind.macd(rising_bars)
        assert result.macd_line > 0
        assert result.histogram == pytest.approx(result.macd_line - result.signal_line)
        assert result.crossover == "BULLISH"

    def test_falling_series_is_bearish(self, falling_bars):
        result = ind.macd(falling_bars)
        assert result.macd_line < 0
        assert result.crossover == "BEARISH"

    def test_flat_series_has_no_crossover(self):
        result = ind.macd(bars_from_closes([100.0] * 40))
        assert result.histogram == 0
        assert result.crossover == "NONE"


class TestVolatility:

    def test_atr_of_constant_range(self):
        bars = bars_from_closes([100.0] * 20)
        assert ind.atr(bars).value == pytest.approx(1.0)

    def test_atr_uses_previous_close_gap(self):
        bars = bars_from_closes([100.0] * 14) + [make_bar(14, 110.0, high=110.5, low=109.5)]
        # last true range: high 110.5 - prev close 100
        assert ind.true_range(bars).iloc[-1] == pytest.approx(10.5)

    def test_bollinger_constant_series(self):
        bands = ind.bollinger_bands(bars_from_closes([100.0] * 25))
        assert bands.upper == bands.middle == bands.lower == pytest.approx(100.0)
        assert bands.bandwidth == 0
        assert bands.percent_b == 0

    def test_bollinger_bandwidth_and_percent_b(self, rising_bars):
        bands = ind.bollinger_bands(rising_bars)
        assert bands.upper > bands.middle > bands.lower
        assert bands.bandwidth == pytest.approx((bands.upper - bands.lower) / bands.middle)
        assert bands.percent_b > 0.5


class TestStochastic:

    def test_rising_series_is_overbought(self, rising_bars):
        result = ind.stochastic(rising_bars)
        assert result.k == pytest.approx(14.5 / 15 * 100)
        assert result.d == pytest.approx(result.k)
        assert result.is_overbought

    def test_falling_series_is_oversold(self, falling_bars):
        result = ind.stochastic(falling_bars)
        assert result.is_oversold

    def test_zero_range_window(self):
        bars = bars_from_closes([100.0] * 20)
        flat = [replace(b, high=100.0, low=100.0) for b in bars]
        assert ind.stochastic(flat).k == 50


def test_calculate_all_indicators(rising_bars):
    bundle = ind.calculate_all_indicators(rising_bars)
    assert set(bundle.sma) == {"sma9", "sma20", "sma50", "sma100", "sma200"}
    assert set(bundle.ema) == {"ema9", "ema20", "ema50"}
    assert bundle.sma["sma100"] == 0
    assert bundle.sma["sma20"] > 0
    assert bundle.rsi.period == 14
    assert bundle.atr.period == 14


def test_annotate_moving_averages():
    bars = bars_from_closes([100.0 + i for i in range(30)])
    annotated = ind.annotate_moving_averages(bars)
    assert len(annotated) == 30
    assert all(b.sma200 is None for b in annotated)
    assert annotated[10].ema12 is None
    assert annotated[11].ema12 is not None
    assert annotated[25].ema26 is not None
    assert [b.close for b in annotated] == [b.close for b in bars]
    assert bars[-1].ema12 is None
