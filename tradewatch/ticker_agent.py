# tradewatch/ticker_agent.py
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from tradewatch.base_agent import BaseAgent
from tradewatch.datastructures import PRICE_UPDATE, AgentConfig, Bar, PriceUpdate

PriceFetcher = Callable[[str], Awaitable[Bar]]

class TickerAgent(BaseAgent):
    """
    Polls the price source for every configured symbol and publishes one
    price update per successful fetch.
    """
    def __init__(self, config: AgentConfig, price_fetcher: PriceFetcher):
        super().__init__(config)
        self.price_fetcher = price_fetcher

    async def _fetch_price(self, symbol: str) -> Optional[Bar]:
        try:
            return await self.price_fetcher(symbol)
        except Exception as e:
            logging.error(f"{self.name}: error fetching price for {symbol}: {e}", exc_info=True)
            return None

    async def work_cycle(self):
        run_id = self._run_id
        symbols = self.symbols
        bars = await asyncio.gather(*(self._fetch_price(s) for s in symbols))

        published = 0
        for symbol, bar in zip(symbols, bars):
            if bar is None:
                continue
            if self._publish_if_current(run_id, PRICE_UPDATE, PriceUpdate(symbol=symbol, bar=bar)):
                published += 1

        self._touch()
        logging.debug(f"{self.name}: published {published}/{len(symbols)} price updates.")
