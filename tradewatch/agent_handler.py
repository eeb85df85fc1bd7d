# tradewatch/agent_handler.py
import asyncio
import logging
from typing import List, Optional

from tradewatch.channels import EventChannel
from tradewatch.datastructures import ERROR, STARTED, STOPPED, TRADE_EXECUTED, AgentConfig, Position, TradeSignal
from tradewatch.trading_agent import TradingAgent

DEFAULT_HANDLER_SETTINGS = {
    'symbols': [],
    'min_confidence': 0.7,
    'max_position_size': 100000.0, # $100k max position
    'risk_limit': 0.02,
}


class AgentHandler:
    """
    Thin façade for call sites that only need a single Trading agent: feed it
    signals directly and read back the simulated positions.
    """
    def __init__(self, trading_agent: Optional[TradingAgent] = None, initial_cash: float = 0.0):
        self.trading_agent = trading_agent or TradingAgent(
            AgentConfig('Trading Agent', 'TRADING', settings=dict(DEFAULT_HANDLER_SETTINGS)),
            initial_cash=initial_cash,
        )
        self.events = EventChannel('agent-handler')
        self._inbox = self.trading_agent.events.subscribe()
        self._forwarder: Optional[asyncio.Task] = None
        self._active = False
        self._symbols: List[str] = []

    def subscribe(self) -> asyncio.Queue:
        return self.events.subscribe()

    async def _forward_events(self):
        while True:
            event = await self._inbox.get()
            if event.type == TRADE_EXECUTED:
                logging.info(f"Trade executed: {event.payload}")
                self.events.publish(TRADE_EXECUTED, event.payload)
            elif event.type == ERROR:
                logging.error(f"Trading agent error: {event.payload}")
                self.events.publish(ERROR, event.payload)
            self._inbox.task_done()

    async def start(self, symbols: List[str]):
        if self._active:
            return
        self._symbols = list(symbols)
        self.trading_agent.update_settings(symbols=self._symbols)
        await self.trading_agent.start()
        self._forwarder = asyncio.create_task(self._forward_events(), name="agent-handler-forwarder")
        self._active = True
        self.events.publish(STARTED, {'symbols': self._symbols})
        logging.info(f"Agent handler started for symbols: {self._symbols}")

    async def stop(self):
        if not self._active:
            return
        self._active = False
        await self.trading_agent.stop()
        if self._forwarder is not None:
            # Let already-published trades reach listeners before shutting down
            await self._inbox.join()
            self._forwarder.cancel()
            await asyncio.gather(self._forwarder, return_exceptions=True)
            self._forwarder = None
        self.events.publish(STOPPED)
        logging.info("Agent handler stopped")

    async def process_trade_signal(self, signal: TradeSignal):
        if not self._active:
            logging.warning("Cannot process trade signal - agent handler is not active")
            return None
        try:
            return await self.trading_agent.handle_trade_signal(signal)
        except Exception:
            logging.error(f"Error processing trade signal {signal}", exc_info=True)
            raise

    def get_positions(self) -> List[Position]:
        return self.trading_agent.get_positions()

    def is_running(self) -> bool:
        return self._active

    def get_symbols(self) -> List[str]:
        return list(self._symbols)
