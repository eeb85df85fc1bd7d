# tradewatch/providers.py
"""
Price, news and classification sources for the agents.

SIMULATION mode uses the random-walk feed below. LIVE mode talks JSON over
HTTP to the configured provider endpoints; their wire schemas belong to the
providers, these adapters only map the fields the agents need.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

import aiohttp

from tradewatch.datastructures import (
    Bar, ClassificationResult, NewsAnalysis, NewsArticle, NewsReport, utcnow,
)


class SimulatedPriceFeed:
    """Random-walk OHLCV bars, one per call and symbol."""
    def __init__(self, start_price: float = 100.0, volatility: float = 0.002, seed: Optional[int] = None):
        self.start_price = start_price
        self.volatility = volatility
        self.last_prices: Dict[str, float] = {}
        self._random = random.Random(seed)

    async def __call__(self, symbol: str) -> Bar:
        open_price = self.last_prices.get(symbol, self.start_price)
        close = max(0.01, open_price * (1 + self._random.uniform(-self.volatility, self.volatility)))
        wiggle = abs(close - open_price) + open_price * self.volatility * self._random.random()
        high = max(open_price, close) + wiggle * self._random.random()
        low = max(0.0, min(open_price, close) - wiggle * self._random.random())
        self.last_prices[symbol] = close
        return Bar(
            symbol=symbol,
            timestamp=utcnow(),
            open=open_price,
            high=high,
            low=low,
            close=close,
            volume=self._random.randint(1000, 1000000),
        )


async def no_news(symbol: str) -> NewsReport:
    """News source for SIMULATION mode: never reports anything."""
    return NewsReport(symbol=symbol)


def _parse_timestamp(value) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


def parse_bar(symbol: str, data: dict) -> Bar:
    close = float(data.get('close', data.get('price')))
    return Bar(
        symbol=symbol,
        timestamp=_parse_timestamp(data.get('timestamp')),
        open=float(data.get('open', close)),
        high=float(data.get('high', close)),
        low=float(data.get('low', close)),
        close=close,
        volume=int(data.get('volume') or 0),
    )


def parse_news_report(symbol: str, data: dict) -> NewsReport:
    articles = [
        NewsArticle(
            title=item.get('title', ''),
            source=item.get('source', ''),
            url=item.get('url', ''),
            published_at=_parse_timestamp(item['publishedAt']) if item.get('publishedAt') else None,
            summary=item.get('summary', ''),
        )
        for item in data.get('articles', [])
    ]
    analyses = [
        NewsAnalysis(
            key_topics=list(item.get('keyTopics', [])),
            market_impact=item.get('marketImpact', ''),
            trading_signals=list(item.get('tradingSignals', [])),
            confidence=float(item.get('confidence', 0.0)),
        )
        for item in data.get('analyses', [])
    ]
    return NewsReport(symbol=symbol, articles=articles, analyses=analyses)


def parse_classification(data: dict) -> Optional[ClassificationResult]:
    action = str(data.get('action', '')).upper()
    if action not in ('BUY', 'SELL', 'HOLD'):
        logging.warning(f"Classifier returned unknown action {data.get('action')!r}")
        return None
    analysis = data.get('analysis') or {}
    return ClassificationResult(
        action=action,
        price=float(data.get('price', 0.0)),
        confidence=float(data.get('confidence', 0.0)),
        reasoning=data.get('reasoning') or analysis.get('reasoning', ''),
        timestamp=_parse_timestamp(data.get('timestamp')),
    )


def _bar_payload(bar: Bar) -> dict:
    return {
        'timestamp': bar.timestamp.isoformat(),
        'open': bar.open,
        'high': bar.high,
        'low': bar.low,
        'close': bar.close,
        'volume': bar.volume,
        'pattern': bar.pattern,
        'patternType': bar.pattern_direction,
        'sma200': bar.sma200,
        'ema12': bar.ema12,
        'ema26': bar.ema26,
    }


class _HttpClient:
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.headers = {'Authorization': f'Bearer {api_key}'} if api_key else {}
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_json(self, path: str) -> dict:
        async with aiohttp.ClientSession(headers=self.headers, timeout=self.timeout) as session:
            async with session.get(f"{self.base_url}{path}") as response:
                response.raise_for_status()
                return await response.json()

    async def _post_json(self, path: str, payload: dict) -> dict:
        async with aiohttp.ClientSession(headers=self.headers, timeout=self.timeout) as session:
            async with session.post(f"{self.base_url}{path}", json=payload) as response:
                response.raise_for_status()
                return await response.json()


class HttpQuoteClient(_HttpClient):
    async def __call__(self, symbol: str) -> Bar:
        return parse_bar(symbol, await self._get_json(f"/quote/{symbol}"))

    async def history(self, symbol: str, limit: int) -> list:
        data = await self._get_json(f"/bars/{symbol}?limit={limit}")
        return [parse_bar(symbol, item) for item in data.get('bars', [])]


class HttpNewsClient(_HttpClient):
    async def __call__(self, symbol: str) -> NewsReport:
        return parse_news_report(symbol, await self._get_json(f"/news/{symbol}"))


class HttpClassifier(_HttpClient):
    async def __call__(self, symbol: str, bars: Sequence[Bar]) -> Optional[ClassificationResult]:
        payload = {'symbol': symbol, 'bars': [_bar_payload(b) for b in bars]}
        return parse_classification(await self._post_json("/chart-analysis", payload))
