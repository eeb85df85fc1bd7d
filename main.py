# main.py
import asyncio
import logging
import signal

from tradewatch.logger import setup_logging
from tradewatch.config import config, Config, OrchestratorConfig
from tradewatch.datastructures import ERROR, PRICE_UPDATE
from tradewatch.orchestrator import AgentOrchestrator, JsonFileRunningFlagStore
from tradewatch.providers import (
    HttpClassifier, HttpNewsClient, HttpQuoteClient, SimulatedPriceFeed, no_news,
)

def build_orchestrator(cfg: Config = config) -> AgentOrchestrator:
    """Wires providers for the configured MODE into a new orchestrator."""
    if cfg.MODE == 'LIVE':
        quotes = HttpQuoteClient(cfg.QUOTE_API_URL, cfg.API_KEY, cfg.HTTP_TIMEOUT)
        orchestrator = AgentOrchestrator(
            OrchestratorConfig.from_env(cfg),
            price_fetcher=quotes,
            news_fetcher=HttpNewsClient(cfg.NEWS_API_URL, cfg.API_KEY, cfg.HTTP_TIMEOUT) if cfg.NEWS_API_URL else no_news,
            classifier=HttpClassifier(cfg.AI_API_URL, cfg.API_KEY, cfg.HTTP_TIMEOUT) if cfg.AI_API_URL else None,
            history_fetcher=quotes.history,
        )
    else:
        orchestrator = AgentOrchestrator(
            OrchestratorConfig.from_env(cfg),
            price_fetcher=SimulatedPriceFeed(),
            news_fetcher=no_news,
        )
    orchestrator.set_store(JsonFileRunningFlagStore(cfg.STATE_FILE))
    return orchestrator

async def log_events(queue: asyncio.Queue):
    while True:
        event = await queue.get()
        if event.type == PRICE_UPDATE:
            logging.debug(f"EVENT {event.type}: {event.payload.symbol} {event.payload.price:.2f}")
        elif event.type == ERROR:
            logging.error(f"EVENT {event.type}: {event.payload.agent}: {event.payload.error}")
        else:
            logging.info(f"EVENT {event.type}: {event.payload}")
        queue.task_done()

async def main():
    setup_logging()
    logging.info(f"Initializing tradewatch in {config.MODE} mode for {config.SYMBOLS}...")

    orchestrator = build_orchestrator()
    # A state file left behind by a crash would otherwise block start()
    orchestrator.store.set_running(False)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    listener = asyncio.create_task(log_events(orchestrator.subscribe()))
    await orchestrator.start()
    try:
        await shutdown.wait()
        logging.info("Received shutdown signal. Stopping agents...")
    finally:
        await orchestrator.stop()
        listener.cancel()
        await asyncio.gather(listener, return_exceptions=True)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    finally:
        logging.info("Shutdown complete.")
