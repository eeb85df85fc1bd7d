"""Shared fixtures and bar factories."""

from datetime import datetime, timedelta, timezone
from typing import List, Sequence

import pytest

from tradewatch.datastructures import AgentConfig, Bar

T0 = datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc)


def make_bar(i: int, close: float, symbol: str = "AAPL", open_=None, high=None, low=None, volume: int = 1000) -> Bar:
    open_ = close if open_ is None else open_
    return Bar(
        symbol=symbol,
        timestamp=T0 + timedelta(minutes=i),
        open=open_,
        high=max(open_, close) if high is None else high,
        low=min(open_, close) if low is None else low,
        close=close,
        volume=volume,
    )


def bars_from_closes(closes: Sequence[float], symbol: str = "AAPL", volumes: Sequence[int] = None) -> List[Bar]:
    """Bars whose open is the previous close and whose range spans open/close +/- 0.5."""
    bars = []
    prev = closes[0]
    for i, close in enumerate(closes):
        bars.append(Bar(
            symbol=symbol,
            timestamp=T0 + timedelta(minutes=i),
            open=prev,
            high=max(prev, close) + 0.5,
            low=max(0.0, min(prev, close) - 0.5),
            close=close,
            volume=volumes[i] if volumes else 1000,
        ))
        prev = close
    return bars


@pytest.fixture
def rising_bars() -> List[Bar]:
    return bars_from_closes([100.0 + i for i in range(60)])


@pytest.fixture
def falling_bars() -> List[Bar]:
    return bars_from_closes([200.0 - i for i in range(60)])


@pytest.fixture
def trading_config() -> AgentConfig:
    return AgentConfig(
        name="Trading Agent",
        type="TRADING",
        settings={"symbols": ["AAPL"], "min_confidence": 0.5, "max_position_size": 5000.0},
    )
