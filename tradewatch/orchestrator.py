# tradewatch/orchestrator.py
import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from tradewatch.analysis_agent import AnalysisAgent, Classifier, HistoryFetcher
from tradewatch.base_agent import BaseAgent
from tradewatch.channels import EventChannel
from tradewatch.config import OrchestratorConfig
from tradewatch.datastructures import (
    ANALYSIS_SIGNAL, ERROR, NEWS_SIGNAL, PRICE_UPDATE, STARTED, STOPPED, TRADE_EXECUTED,
    AgentConfig, AgentErrorReport, AgentEvent, Position,
)
from tradewatch.news_agent import MonitoringStateStore, NewsAgent, NewsFetcher
from tradewatch.ticker_agent import PriceFetcher, TickerAgent
from tradewatch.trading_agent import TradingAgent

START_ORDER = ('ticker', 'news', 'analysis', 'trading')


class RunningFlagStore(Protocol):
    """Persisted 'orchestrator is running' flag."""
    def get_running(self) -> bool: ...
    def set_running(self, running: bool) -> None: ...


class InMemoryRunningFlagStore:
    def __init__(self, running: bool = False):
        self.running = running

    def get_running(self) -> bool:
        return self.running

    def set_running(self, running: bool) -> None:
        self.running = running


class JsonFileRunningFlagStore:
    """Keeps the running flag in a small JSON state file."""
    def __init__(self, path):
        self.state_file = Path(path)

    def get_running(self) -> bool:
        if not self.state_file.exists():
            return False
        try:
            with open(self.state_file, 'r') as f:
                return bool(json.load(f).get('orchestrator_running', False))
        except (OSError, ValueError) as e:
            logging.error(f"Could not read orchestrator state from {self.state_file}: {e}")
            return False

    def set_running(self, running: bool) -> None:
        with open(self.state_file, 'w') as f:
            json.dump({'orchestrator_running': running}, f, indent=4)


class AgentOrchestrator:
    """
    Owns the Ticker, News, Analysis and Trading agents, routes their events
    to each other and re-publishes them on its own channel for outside
    listeners.
    """
    def __init__(
        self,
        config: OrchestratorConfig,
        price_fetcher: PriceFetcher,
        news_fetcher: NewsFetcher,
        classifier: Optional[Classifier] = None,
        history_fetcher: Optional[HistoryFetcher] = None,
        monitoring_store: Optional[MonitoringStateStore] = None,
    ):
        self.config = config
        self.events = EventChannel('orchestrator')
        self.store: Optional[RunningFlagStore] = None
        self.is_running = False
        self._dispatchers: List[asyncio.Task] = []

        self.ticker_agent = TickerAgent(
            AgentConfig('Ticker Agent', 'TICKER', settings={
                'symbols': list(config.symbols),
                'update_interval': config.update_interval,
                'data_source': config.data_source,
            }),
            price_fetcher=price_fetcher,
        )
        self.trading_agent = TradingAgent(
            AgentConfig('Trading Agent', 'TRADING', settings={
                'symbols': list(config.symbols),
                'min_confidence': config.min_confidence,
                'max_position_size': config.max_position_size,
                'risk_limit': config.risk_limit,
            }),
            initial_cash=config.initial_capital,
        )
        self.analysis_agent = AnalysisAgent(
            AgentConfig('Analysis Agent', 'ANALYSIS', settings={
                'symbols': list(config.symbols),
                'update_interval': config.update_interval,
                'technical_indicators': list(config.technical_indicators),
                'fundamental_metrics': list(config.fundamental_metrics),
            }),
            classifier=classifier,
            history_fetcher=history_fetcher,
        )
        self.news_agent = NewsAgent(
            AgentConfig('News Agent', 'NEWS', settings={
                'symbols': list(config.symbols),
                'update_interval': config.news_update_interval,
                'news_sources': list(config.news_sources),
            }),
            news_fetcher=news_fetcher,
            price_lookup=self.trading_agent.get_last_price,
            monitoring_store=monitoring_store,
        )

        self.agents: Dict[str, BaseAgent] = {
            'ticker': self.ticker_agent,
            'analysis': self.analysis_agent,
            'news': self.news_agent,
            'trading': self.trading_agent,
        }
        # Subscribe up front so nothing published during start() is missed
        self._inboxes = {key: agent.events.subscribe() for key, agent in self.agents.items()}

    def set_store(self, store: RunningFlagStore):
        self.store = store

    def subscribe(self) -> asyncio.Queue:
        return self.events.subscribe()

    # --- Event routing ---
    async def _route(self, key: str, event: AgentEvent):
        if event.type == PRICE_UPDATE:
            self.analysis_agent.on_price_update(event.payload)
            self.trading_agent.on_price_update(event.payload)
            self.events.publish(PRICE_UPDATE, event.payload)
        elif event.type in (ANALYSIS_SIGNAL, NEWS_SIGNAL):
            await self.trading_agent.handle_trade_signal(event.payload)
            self.events.publish(event.type, event.payload)
        elif event.type == TRADE_EXECUTED:
            self.events.publish(TRADE_EXECUTED, event.payload)
        elif event.type == ERROR:
            self._handle_agent_error(self.agents[key], event.payload)

    def _handle_agent_error(self, agent: BaseAgent, error: BaseException):
        logging.error(f"Agent error from {agent.name}: {error}")
        self.events.publish(ERROR, AgentErrorReport(agent=agent.name, error=error))

    async def _dispatch(self, key: str, inbox: asyncio.Queue):
        while True:
            event = await inbox.get()
            try:
                await self._route(key, event)
            except Exception:
                logging.critical(f"Unexpected error routing {event.type} from {key}", exc_info=True)
            finally:
                inbox.task_done()

    def _discard_pending(self):
        """Drops events left in the inboxes by a previous run without routing them."""
        for key, inbox in self._inboxes.items():
            dropped = 0
            while not inbox.empty():
                inbox.get_nowait()
                inbox.task_done()
                dropped += 1
            if dropped:
                logging.info(f"Discarded {dropped} stale event(s) from {self.agents[key].name}")

    def _start_dispatchers(self):
        if self._dispatchers:
            return
        self._discard_pending()
        self._dispatchers = [
            asyncio.create_task(self._dispatch(key, inbox), name=f"dispatch-{key}")
            for key, inbox in self._inboxes.items()
        ]

    async def _stop_dispatchers(self):
        tasks, self._dispatchers = self._dispatchers, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._discard_pending()

    async def drain(self):
        """Waits until every event published so far has been routed."""
        for inbox in self._inboxes.values():
            await inbox.join()

    # --- Lifecycle ---
    def _require_store(self) -> RunningFlagStore:
        if self.store is None:
            raise RuntimeError("Store not initialized. Call set_store before starting or stopping the orchestrator.")
        return self.store

    async def start(self):
        store = self._require_store()
        if self.is_running or store.get_running():
            logging.info("Orchestrator is already running (either locally or in persisted state)")
            return

        logging.info("Starting Agent Orchestrator...")
        self._start_dispatchers()
        try:
            for key in START_ORDER:
                await self.agents[key].start()
            self.is_running = True
            store.set_running(True)
            self.events.publish(STARTED)
        except Exception:
            logging.error("Error starting orchestrator", exc_info=True)
            self.is_running = False
            store.set_running(False)
            try:
                await self._stop_agents()
            except Exception:
                logging.error("Cleanup after failed start also failed", exc_info=True)
            await self._stop_dispatchers()
            raise

    async def _stop_agents(self):
        first_error = None
        for key in reversed(START_ORDER):
            try:
                await self.agents[key].stop()
            except Exception as e:
                logging.error(f"Error stopping {self.agents[key].name}: {e}", exc_info=True)
                first_error = first_error or e
        if first_error is not None:
            raise first_error

    async def stop(self):
        store = self._require_store()
        if not self.is_running and not store.get_running():
            logging.info("Orchestrator is already stopped")
            return

        logging.info("Stopping Agent Orchestrator...")
        try:
            await self._stop_agents()
        finally:
            # Persist stopped even on failure so a later start() is not blocked
            self.is_running = False
            store.set_running(False)
            await self._stop_dispatchers()
        self.events.publish(STOPPED)

    # --- Queries and configuration ---
    def get_agent_statuses(self) -> Dict[str, AgentConfig]:
        return {key: agent.get_status() for key, agent in self.agents.items()}

    def get_positions(self) -> List[Position]:
        return self.trading_agent.get_positions()

    def update_config(self, **partial):
        """Merges new settings and hands them to the agents; they apply from the next tick."""
        self.config = self.config.merged(**partial)
        cfg = self.config

        if 'symbols' in partial:
            for agent in self.agents.values():
                agent.update_settings(symbols=list(cfg.symbols))
        if 'update_interval' in partial:
            self.ticker_agent.update_settings(update_interval=cfg.update_interval)
            self.analysis_agent.update_settings(update_interval=cfg.update_interval)
        if 'news_update_interval' in partial:
            self.news_agent.update_settings(update_interval=cfg.news_update_interval)
        trading_keys = {'min_confidence', 'max_position_size', 'risk_limit'} & set(partial)
        if trading_keys:
            self.trading_agent.update_settings(**{k: getattr(cfg, k) for k in trading_keys})
        logging.info(f"Orchestrator config updated: {sorted(partial)}")
