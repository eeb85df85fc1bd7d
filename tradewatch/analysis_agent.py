# tradewatch/analysis_agent.py
import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Sequence

from tradewatch.base_agent import BaseAgent
from tradewatch.datastructures import (
    ANALYSIS_SIGNAL, AgentConfig, Bar, ClassificationResult, PriceUpdate, SignalAnalysis, TradeSignal,
)
from tradewatch.indicators import annotate_moving_averages, calculate_all_indicators
from tradewatch.patterns import detect_patterns
from tradewatch.trend import analyze_trend

Classifier = Callable[[str, Sequence[Bar]], Awaitable[Optional[ClassificationResult]]]
HistoryFetcher = Callable[[str, int], Awaitable[List[Bar]]]

ANALYSIS_WINDOW = 30
MIN_BARS = 10
HISTORY_LIMIT = 500
JITTER_TOLERANCE = 1.0 # Seconds


class BarHistory:
    """Rolling, timestamp-ordered bar buffer per symbol."""
    def __init__(self, maxlen: int = HISTORY_LIMIT):
        self.maxlen = maxlen
        self._bars: Dict[str, Deque[Bar]] = {}

    def add(self, bar: Bar):
        series = self._bars.setdefault(bar.symbol, deque(maxlen=self.maxlen))
        if series and bar.timestamp == series[-1].timestamp:
            series[-1] = bar
        elif not series or bar.timestamp > series[-1].timestamp:
            series.append(bar)
        else:
            logging.debug(f"Dropping out-of-order bar for {bar.symbol} at {bar.timestamp}")

    def extend(self, bars: Sequence[Bar]):
        for bar in bars:
            self.add(bar)

    def get(self, symbol: str, limit: Optional[int] = None) -> List[Bar]:
        series = list(self._bars.get(symbol, ()))
        return series[-limit:] if limit else series

    def __len__(self):
        return len(self._bars)


class TechnicalClassifier:
    """
    Default classifier that needs no external service: follows the primary
    trend and uses its strength as confidence.
    """
    async def __call__(self, symbol: str, bars: Sequence[Bar]) -> Optional[ClassificationResult]:
        indicators = calculate_all_indicators(bars)
        trend = analyze_trend(bars, indicators)
        last = bars[-1]

        if trend.primary_trend == 'BULLISH':
            action, confidence = 'BUY', trend.strength
        elif trend.primary_trend == 'BEARISH':
            action, confidence = 'SELL', 1.0 - trend.strength
        else:
            action, confidence = 'HOLD', 0.0

        reasoning = (
            f"Trend {trend.primary_trend} (strength {trend.strength:.2f}), "
            f"RSI {indicators.rsi.value:.1f}, MACD {indicators.macd.crossover}"
        )
        if last.pattern:
            reasoning += f", last candle {last.pattern}"
        return ClassificationResult(action=action, price=last.close, confidence=confidence, reasoning=reasoning)


class AnalysisAgent(BaseAgent):
    """
    Re-analyzes every configured symbol on each tick from its recent bars and
    publishes a signal for every BUY/SELL classification.
    """
    def __init__(
        self,
        config: AgentConfig,
        classifier: Optional[Classifier] = None,
        history_fetcher: Optional[HistoryFetcher] = None,
    ):
        super().__init__(config)
        self.classifier = classifier or TechnicalClassifier()
        self.history_fetcher = history_fetcher
        self.history = BarHistory()
        self._last_cycle_at: Optional[float] = None

    def on_price_update(self, update: PriceUpdate):
        self.history.add(update.bar)

    async def _seed_history(self, symbol: str):
        if self.history_fetcher is None or len(self.history.get(symbol)) >= MIN_BARS:
            return
        try:
            self.history.extend(await self.history_fetcher(symbol, ANALYSIS_WINDOW))
        except Exception as e:
            logging.error(f"{self.name}: could not load history for {symbol}: {e}", exc_info=True)

    async def analyze_symbol(self, symbol: str) -> Optional[TradeSignal]:
        await self._seed_history(symbol)
        history = self.history.get(symbol)
        if len(history) < MIN_BARS:
            logging.debug(f"{self.name}: only {len(history)} bars for {symbol}, skipping.")
            return None

        # Moving averages use the full history, the classifier only sees the window
        window = detect_patterns(annotate_moving_averages(history)[-ANALYSIS_WINDOW:])
        result = await self.classifier(symbol, window)
        if result is None or result.action not in ('BUY', 'SELL'):
            return None

        return TradeSignal(
            symbol=symbol,
            action=result.action,
            price=result.price,
            confidence=min(1.0, max(0.0, result.confidence)),
            timestamp=result.timestamp,
            source='ANALYSIS',
            analysis=SignalAnalysis(
                sentiment='BULLISH' if result.action == 'BUY' else 'BEARISH',
                reasoning=result.reasoning,
            ),
        )

    async def start(self):
        # The jitter guard never applies to the first cycle of a run
        self._last_cycle_at = None
        await super().start()

    async def work_cycle(self):
        run_id = self._run_id
        now = time.monotonic()
        if self._last_cycle_at is not None and self.interval:
            if now - self._last_cycle_at < self.interval - JITTER_TOLERANCE:
                logging.debug(f"{self.name}: cycle requested too early, skipping.")
                return
        self._last_cycle_at = now

        symbols = self.symbols
        signals = await asyncio.gather(*(self.analyze_symbol(s) for s in symbols))
        for signal in signals:
            if signal is not None and self._publish_if_current(run_id, ANALYSIS_SIGNAL, signal):
                logging.info(f"{self.name}: {signal.action} {signal.symbol} @ {signal.price:.2f} (confidence {signal.confidence:.2f})")

        self._touch()
