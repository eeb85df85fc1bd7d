# tradewatch/news_agent.py
import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Sequence

from tradewatch.base_agent import BaseAgent
from tradewatch.datastructures import (
    NEWS_SIGNAL, AgentConfig, MarketImpact, NewsAnalysis, NewsReport, SignalAnalysis, TradeSignal, utcnow,
)

NewsFetcher = Callable[[str], Awaitable[NewsReport]]
PriceLookup = Callable[[str], Optional[float]]

MIN_NEWS_INTERVAL = 15 * 60 # Seconds
MIN_NEWS_CONFIDENCE = 0.7

# e.g. "up (2.5%) short-term"
_IMPACT_RE = re.compile(
    r'^\s*(?P<direction>up|down|stable)\s*\(\s*(?P<magnitude>[-+]?\d+(?:\.\d+)?)\s*%\s*\)\s*(?P<timeframe>[\w-]+)?\s*$',
    re.IGNORECASE,
)


def parse_market_impact(text: str) -> Optional[MarketImpact]:
    """Parses '<up|down|stable> (<magnitude>%) <timeframe>'. Returns None when malformed."""
    match = _IMPACT_RE.match(text or '')
    if not match:
        return None
    return MarketImpact(
        direction=match.group('direction').lower(),
        magnitude=float(match.group('magnitude')),
        timeframe=(match.group('timeframe') or '').lower(),
    )


@dataclass
class MonitoringState:
    is_monitoring: bool = False
    last_checked: Optional[datetime] = None


class MonitoringStateStore:
    """Per-symbol in-flight flags for news fetches."""
    def __init__(self):
        self._states: Dict[str, MonitoringState] = {}

    def is_symbol_being_monitored(self, symbol: str) -> bool:
        state = self._states.get(symbol)
        return bool(state and state.is_monitoring)

    def set_symbol_monitoring(self, symbol: str, is_monitoring: bool):
        self._states[symbol] = MonitoringState(is_monitoring=is_monitoring, last_checked=utcnow())

    def get_last_checked(self, symbol: str) -> Optional[datetime]:
        state = self._states.get(symbol)
        return state.last_checked if state else None


class NewsAgent(BaseAgent):
    """
    Polls news for every configured symbol and turns confident, directional
    market-impact analyses into trade signals.
    """
    def __init__(
        self,
        config: AgentConfig,
        news_fetcher: NewsFetcher,
        price_lookup: Optional[PriceLookup] = None,
        monitoring_store: Optional[MonitoringStateStore] = None,
        min_confidence: float = MIN_NEWS_CONFIDENCE,
    ):
        interval = max(config.settings.get('update_interval') or 0, MIN_NEWS_INTERVAL)
        config.settings['update_interval'] = interval
        super().__init__(config, interval=interval)
        self.news_fetcher = news_fetcher
        self.price_lookup = price_lookup
        self.monitoring_store = monitoring_store or MonitoringStateStore()
        self.min_confidence = min_confidence

    def update_settings(self, **settings):
        if 'update_interval' in settings:
            settings['update_interval'] = max(settings['update_interval'] or 0, MIN_NEWS_INTERVAL)
        super().update_settings(**settings)

    def is_symbol_being_monitored(self, symbol: str) -> bool:
        return self.monitoring_store.is_symbol_being_monitored(symbol)

    def compute_trade_signal(self, symbol: str, analyses: Sequence[NewsAnalysis]) -> Optional[TradeSignal]:
        """Picks the most confident directional analysis; None if nothing qualifies."""
        best, best_impact = None, None
        for analysis in analyses:
            impact = parse_market_impact(analysis.market_impact)
            if impact is None or impact.direction == 'stable':
                continue
            if analysis.confidence < self.min_confidence:
                continue
            if best is None or analysis.confidence > best.confidence:
                best, best_impact = analysis, impact

        if best is None:
            return None

        price = self.price_lookup(symbol) if self.price_lookup else None
        if not price:
            logging.warning(f"{self.name}: no reference price for {symbol}, dropping news signal.")
            return None

        action = 'BUY' if best_impact.direction == 'up' else 'SELL'
        return TradeSignal(
            symbol=symbol,
            action=action,
            price=price,
            confidence=min(1.0, best.confidence),
            source='NEWS',
            analysis=SignalAnalysis(
                sentiment='BULLISH' if action == 'BUY' else 'BEARISH',
                key_events=list(best.key_topics),
                reasoning='; '.join(best.trading_signals),
                impact_magnitude=best_impact.magnitude,
                impact_timeframe=best_impact.timeframe,
            ),
        )

    async def _monitor_symbol(self, symbol: str) -> Optional[TradeSignal]:
        if self.monitoring_store.is_symbol_being_monitored(symbol):
            logging.info(f"{self.name}: {symbol} is already being monitored, skipping.")
            return None

        self.monitoring_store.set_symbol_monitoring(symbol, True)
        try:
            report = await self.news_fetcher(symbol)
            logging.debug(f"{self.name}: {len(report.articles)} articles for {symbol}")
            return self.compute_trade_signal(symbol, report.analyses)
        except Exception as e:
            logging.error(f"{self.name}: error monitoring news for {symbol}: {e}", exc_info=True)
            return None
        finally:
            self.monitoring_store.set_symbol_monitoring(symbol, False)

    async def monitor_news(self):
        run_id = self._run_id
        symbols = self.symbols
        signals = await asyncio.gather(*(self._monitor_symbol(s) for s in symbols))
        for signal in signals:
            if signal is not None and self._publish_if_current(run_id, NEWS_SIGNAL, signal):
                logging.info(f"{self.name}: news signal {signal.action} {signal.symbol} (confidence {signal.confidence:.2f})")
        self._touch()

    async def work_cycle(self):
        await self.monitor_news()
